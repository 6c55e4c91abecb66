from datetime import timedelta

import fakeredis
import mongomock
import pytest
from bson.objectid import ObjectId
from fastapi.testclient import TestClient
from mongoengine import connect, disconnect
from mongoengine.connection import get_connection

from examprep.connections import redis as redis_connection
from examprep.models.attempt import Attempt, AttemptStatus
from examprep.models.base import utcnow
from examprep.models.batch import Batch
from examprep.models.question import Question
from examprep.models.test import Test
from examprep.models.user import User
from examprep.services import attempts as attempt_service
from examprep.services.auth import create_tokens


TEST_DB = "examprep_test"


@pytest.fixture(autouse=True)
def mongo():
    disconnect(alias="default")
    connect(TEST_DB, host="mongodb://localhost", alias="default", mongo_client_class=mongomock.MongoClient)
    yield
    get_connection(alias="default").drop_database(TEST_DB)
    disconnect(alias="default")


@pytest.fixture(autouse=True)
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    redis_connection.use_redis(client)
    yield client
    redis_connection.use_redis(None)


@pytest.fixture(autouse=True)
def scheduled(monkeypatch):
    """Record auto-submit jobs instead of talking to rq."""
    jobs = []

    def _schedule_at(run_at, func, *args, **kwargs):
        jobs.append((run_at, func, args, kwargs.get("job_id")))

    monkeypatch.setattr(attempt_service, "schedule_at", _schedule_at)
    return jobs


@pytest.fixture
def make_batch():
    def _make(name="Morning"):
        batch = Batch(name=name)
        batch.save()
        return batch
    return _make


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(name=None, batch=None, **fields):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"Student {n}",
            email=f"student{n}@example.com",
            password="not-a-real-hash",
            batch=batch,
            **fields,
        )
        user.save()
        return user
    return _make


@pytest.fixture
def make_question():
    counter = {"n": 0}

    def _make(correct=(0,), options=4, subject="physics", **fields):
        counter["n"] += 1
        question = Question(
            text=f"Question {counter['n']}",
            options=[f"Option {i}" for i in range(options)],
            correct_options=list(correct),
            subject=subject,
            topic="Kinematics",
            explanation="Because.",
            **fields,
        )
        question.save()
        return question
    return _make


@pytest.fixture
def make_test(make_question):
    def _make(questions=None, total_marks=100, negative_marking=0.25, duration_minutes=60,
              status="published", batches=None, answer_key_published=True, title="Mock Test"):
        if questions is None:
            questions = [make_question() for _ in range(4)]
        test = Test(
            title=title,
            questions=questions,
            duration_minutes=duration_minutes,
            total_marks=total_marks,
            negative_marking=negative_marking,
            status=status,
            batches=batches or [],
            answer_key_published=answer_key_published,
        )
        test.save()
        return test
    return _make


@pytest.fixture
def make_submitted_attempt():
    """Insert a finished attempt directly, for ranking tests."""
    def _make(user, test, score, correct=0, incorrect=0, unanswered=0, minutes_taken=10, started_ago_minutes=120):
        started_at = utcnow() - timedelta(minutes=started_ago_minutes)
        attempt = Attempt(
            user=user,
            test=test,
            status=AttemptStatus.SUBMITTED.value,
            started_at=started_at,
            submitted_at=started_at + timedelta(minutes=minutes_taken),
            score=score,
            correct=correct,
            incorrect=incorrect,
            unanswered=unanswered,
            total_questions=correct + incorrect + unanswered,
            active_key=f"{user.id}:{test.id}:{ObjectId()}",
        )
        attempt.save()
        return attempt
    return _make


@pytest.fixture
def expire():
    """Move an attempt's start back so it is `minutes` past its deadline."""
    def _expire(attempt, minutes=1):
        test = attempt.test.fetch()
        started_at = utcnow() - timedelta(minutes=test.duration_minutes + minutes)
        Attempt.objects(id=attempt.id).update_one(set__started_at=started_at)
        attempt.reload()
        return attempt
    return _expire


@pytest.fixture
def client():
    from main import app
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(user):
        tokens = create_tokens(user)
        return {"Authorization": f"Bearer {tokens.access_token}"}
    return _headers
