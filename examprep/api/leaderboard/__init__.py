from fastapi import APIRouter, Depends, HTTPException, Query

from examprep.models.user import User
from examprep.services.auth import get_current_user
from examprep.services.rate_limit import limit_route
from examprep.services import leaderboard as leaderboard_service
from examprep.utils.config import settings


router = APIRouter()

# Rankings are recomputed on every read, so the cross-test boards are throttled per user
_throttle = limit_route(lambda: settings.leaderboard_rate_limit_seconds)


@router.get("/tests/{test_id}")
def board_for_test(
    test_id: str,
    limit: int | None = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    """PROTECTED: Ranked first attempts for a test once its answer key is out."""
    return leaderboard_service.leaderboard_for_test(test_id, limit=limit or settings.leaderboard_size)


@router.get("/tests/{test_id}/me")
def my_test_rank(
    test_id: str,
    current_user: User = Depends(get_current_user),
) -> dict:
    return leaderboard_service.rank_in_test(test_id, str(current_user.id))


@router.get("/tests/{test_id}/analytics")
def stats_for_test(
    test_id: str,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Score spread, question success rates and score bands for a test."""
    return leaderboard_service.analytics_for_test(test_id)


@router.get("/global", dependencies=[Depends(_throttle)])
def global_board(
    limit: int | None = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    """PROTECTED | RATE-LIMITED: Totals across tests with tiers."""
    return leaderboard_service.global_leaderboard(limit=limit or settings.global_leaderboard_size)


@router.get("/batch", dependencies=[Depends(_throttle)])
def batch_board(
    limit: int | None = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    """PROTECTED | RATE-LIMITED: Same as the global board, limited to the caller's batch."""
    if not current_user.batch:
        raise HTTPException(status_code=404, detail="No batch assigned")
    return leaderboard_service.batch_leaderboard(str(current_user.batch.id), limit=limit or settings.global_leaderboard_size)


@router.get("/me/summary")
def my_summary(current_user: User = Depends(get_current_user)) -> dict:
    return leaderboard_service.student_summary(current_user)


@router.get("/me/trend")
def my_trend(
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    """PROTECTED: Score and accuracy over the caller's latest tests, oldest first."""
    return leaderboard_service.performance_trend(current_user, limit=limit)
