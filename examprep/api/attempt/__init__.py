from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from examprep.models.user import User
from examprep.services.auth import get_current_user
from examprep.services import attempts as attempt_service


router = APIRouter()


class StartAttemptBody(BaseModel):
    test_id: str
    force_new: bool = False

@router.post("/start")
def start_attempt(
    body: StartAttemptBody,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Start a fresh attempt or resume the in-progress one."""
    attempt, created = attempt_service.start_attempt(current_user, body.test_id, force_new=body.force_new)
    output = attempt_service.describe_attempt(attempt, with_questions=True)
    output["resumed"] = not created
    return output


@router.get("")
def list_my_attempts(
    test_id: str | None = None,
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    """PROTECTED: The caller's attempts, newest first."""
    return [a.to_dict() for a in attempt_service.list_attempts(current_user, test_id=test_id)]


@router.get("/{attempt_id}")
def get_attempt(
    attempt_id: str,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Attempt with questions in its fixed order, for resume or review."""
    return attempt_service.get_attempt(current_user, attempt_id)


class SaveAnswerBody(BaseModel):
    question_id: str
    selected: list[int] = Field(default_factory=list)

@router.post("/{attempt_id}/answers")
def save_answer(
    attempt_id: str,
    body: SaveAnswerBody,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Replace the selection for one question while the attempt is open."""
    attempt = attempt_service.save_answer(current_user, attempt_id, body.question_id, body.selected)
    return {
        "attempt_id": str(attempt.id),
        "question_id": body.question_id,
        "selected": attempt.answers.get(body.question_id, []),
    }


@router.post("/{attempt_id}/submit")
def submit_attempt(
    attempt_id: str,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Score and close the attempt; repeating it returns the same result."""
    result = attempt_service.submit_attempt(current_user, attempt_id)
    return {"attempt_id": attempt_id, **result.to_dict()}
