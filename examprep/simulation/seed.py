from __future__ import annotations

import logging
import random

from examprep.connections.mongo import init_mongo, close_mongo
from examprep.models.attempt import Attempt
from examprep.models.batch import Batch
from examprep.models.question import Question
from examprep.models.test import Test, TestStatus
from examprep.models.user import User
from examprep.services.auth import hash_password
from examprep.utils.base import Difficulty
from examprep.utils.logging_config import configure_logging


logger = logging.getLogger(__name__)

SUBJECTS = ["physics", "chemistry", "maths", "biology"]


def ensure_batches() -> list[Batch]:
    batches: list[Batch] = []
    for name in ("Morning", "Evening"):
        batch = Batch.objects(name=name).first()
        if not batch:
            batch = Batch(name=name, description=f"{name} batch")
            batch.save()
        batches.append(batch)
    return batches


def ensure_users(batches: list[Batch]) -> list[User]:
    users: list[User] = []
    fixtures = [
        ("Alice Example", "alice@example.com", 0),
        ("Bob Example", "bob@example.com", 0),
        ("Carol Example", "carol@example.com", 1),
        ("Dan Example", "dan@example.com", None),
    ]
    for name, email, batch_index in fixtures:
        user = User.objects(email=email).first()
        if not user:
            user = User(
                name=name,
                email=email,
                password=hash_password("Secret123!"),
                batch=batches[batch_index] if batch_index is not None else None,
            )
            user.save()
        users.append(user)
    return users


def ensure_questions(count: int = 60) -> list[Question]:
    questions: list[Question] = []
    difficulties = [d.value for d in Difficulty]
    for i in range(1, count + 1):
        text = f"Seed question {i}"
        question = Question.objects(text=text).first()
        if not question:
            # every fifth question has two correct options
            correct_count = 2 if i % 5 == 0 else 1
            question = Question(
                text=text,
                options=[f"Option {k + 1} of question {i}" for k in range(4)],
                correct_options=sorted(random.sample(range(4), k=correct_count)),
                subject=SUBJECTS[(i - 1) % len(SUBJECTS)],
                topic=f"Topic {(i - 1) // 10 + 1}",
                difficulty=difficulties[(i - 1) % len(difficulties)],
                explanation=f"Worked explanation for question {i}",
            )
            question.save()
        questions.append(question)
    return questions


def ensure_tests(questions: list[Question], batches: list[Batch]) -> list[Test]:
    tests: list[Test] = []
    for i in range(1, 6):
        title = f"Mock Test {i}"
        test = Test.objects(title=title).first()
        if not test:
            test = Test(
                title=title,
                description=f"Full-length mock test {i}",
                questions=random.sample(questions, k=20),
                duration_minutes=60,
                total_marks=100,
                negative_marking=0.25,
                status=TestStatus.PUBLISHED.value,
                # the last test is restricted to the first batch
                batches=[batches[0]] if i == 5 else [],
                answer_key_published=True,
            )
            test.save()
        tests.append(test)
    return tests


def seed() -> None:
    configure_logging()
    init_mongo()
    try:
        # Purge existing data in an order that respects references
        Attempt.drop_collection()
        Test.drop_collection()
        Question.drop_collection()
        User.drop_collection()
        Batch.drop_collection()

        batches = ensure_batches()
        ensure_users(batches)
        questions = ensure_questions()
        tests = ensure_tests(questions, batches)
        logger.info("Seed completed: %s tests, first test id %s", len(tests), tests[0].id)
    finally:
        close_mongo()


if __name__ == "__main__":
    seed()
