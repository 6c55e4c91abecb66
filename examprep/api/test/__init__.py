from fastapi import APIRouter, Depends

from examprep.models.user import User
from examprep.models.question import Question
from examprep.services.auth import get_current_user
from examprep.services.attempts import get_visible_test, list_visible_tests


router = APIRouter()


@router.get("")
def list_tests(current_user: User = Depends(get_current_user)) -> list[dict]:
    """PROTECTED: Published tests visible to the caller's batch."""
    return [test.to_dict() for test in list_visible_tests(current_user)]


@router.get("/{test_id}")
def get_test_detail(
    test_id: str,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Test with its questions in authored order; the answer key stays hidden."""
    test = get_visible_test(current_user, test_id)
    output = test.to_dict()
    output["question_details"] = [q.to_output() for q in test.questions if isinstance(q, Question)]
    return output
