"""Drive a cohort of users through full attempts to exercise scoring and rankings."""
from __future__ import annotations

import logging
import random

from examprep.models.user import User
from examprep.models.question import Question
from examprep.services import attempts as attempt_service
from examprep.services import leaderboard as leaderboard_service
from examprep.utils.base import ValidationError


logger = logging.getLogger(__name__)


def random_selection(question: Question, rng: random.Random) -> list[int]:
    """Pick a selection for a question: blank, right or wrong."""
    roll = rng.random()
    if roll < 0.15:
        return []
    if roll < 0.65:
        return list(question.correct_options)
    k = rng.randint(1, len(question.options))
    return rng.sample(range(len(question.options)), k=k)


def simulate_test_for_users(test_id: str, users: list[User] | None = None, seed: int | None = None) -> dict:
    """Start, answer and submit one attempt per user; returns per-user results and the board."""
    rng = random.Random(seed)
    if users is None:
        users = list(User.objects(is_suspended=False).order_by("created_at"))
    if not users:
        raise ValueError("Not enough users to simulate")

    results: dict[str, dict] = {}
    for user in users:
        try:
            attempt, _ = attempt_service.start_attempt(user, test_id, force_new=True)
        except ValidationError as exc:
            logger.info("Skipping %s: %s", user.email, exc.detail)
            continue

        test = attempt.test.fetch()
        by_id = {str(q.id): q for q in test.questions if isinstance(q, Question)}
        for question_id in attempt.question_order:
            question = by_id.get(str(question_id))
            if question is None:
                continue
            attempt_service.save_answer(user, str(attempt.id), str(question_id), random_selection(question, rng))

        result = attempt_service.submit_attempt(user, str(attempt.id))
        results[str(user.id)] = {"attempt_id": str(attempt.id), **result.to_dict()}

    return {
        "attempts": results,
        "leaderboard": leaderboard_service.leaderboard_for_test(test_id),
    }
