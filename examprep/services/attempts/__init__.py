"""Attempt state machine.

An attempt moves not_started -> in_progress -> submitted; `abandoned` closes
an in-progress attempt replaced through `start_attempt(force_new=True)`.
Expiry is derived from the stored `started_at` and the test duration, never
from anything the client reports. Every transition is a single conditional
update keyed on the current status, so racing calls cannot both win.
"""
from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from bson.objectid import ObjectId
from mongoengine import DoesNotExist, NotUniqueError

from examprep.models.base import as_utc, utcnow
from examprep.models.user import User
from examprep.models.test import Test, TestStatus
from examprep.models.question import Question
from examprep.models.attempt import Attempt, AttemptStatus, AttemptSubjectScore
from examprep.services.scheduler import schedule_at
from examprep.services.scoring import AnswerKey, ScoreResult, score, subject_breakdown
from examprep.utils.base import ValidationError, NotFoundError, ConflictError, AttemptExpiredError
from examprep.utils.config import settings


logger = logging.getLogger(__name__)


def _object_id(value: str | ObjectId, label: str) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        raise NotFoundError(f"{label} not found")
    return ObjectId(value)


# ----------------------------- Catalog access ----------------------------- #

def get_test(test_id: str | ObjectId) -> Test:
    test: Test | None = Test.objects(id=_object_id(test_id, "Test")).first()
    if not test:
        raise NotFoundError("Test not found")
    return test


def get_visible_test(user: User, test_id: str | ObjectId) -> Test:
    """Resolve a test the user is allowed to take (published and batch-visible)."""
    test = get_test(test_id)
    if not test.is_visible_to(user.batch):
        raise ValidationError("Test is not available")
    return test


def list_visible_tests(user: User) -> list[Test]:
    tests = Test.objects(status=TestStatus.PUBLISHED.value).order_by("-created_at")
    return [test for test in tests if test.is_visible_to(user.batch)]


def _fetch_test(attempt: Attempt) -> Test:
    try:
        return attempt.test.fetch()
    except DoesNotExist:
        raise NotFoundError("Test not found")


# ----------------------------- Timing ----------------------------- #

def deadline(attempt: Attempt, test: Test) -> datetime:
    return as_utc(attempt.started_at) + timedelta(minutes=test.duration_minutes)


def is_expired(attempt: Attempt, test: Test, now: datetime | None = None) -> bool:
    return (now or utcnow()) >= deadline(attempt, test)


def remaining_seconds(attempt: Attempt, test: Test, now: datetime | None = None) -> float:
    if attempt.status != AttemptStatus.IN_PROGRESS.value:
        return 0.0
    return max(0.0, (deadline(attempt, test) - (now or utcnow())).total_seconds())


def auto_submit_job_id(attempt: Attempt, run_at: datetime) -> str:
    """One job per (attempt, deadline): re-arming the same deadline replaces the queued job."""
    return f"auto-submit-{attempt.id}-{int(run_at.timestamp())}"


def _schedule_auto_submit(attempt: Attempt, test: Test) -> None:
    if not settings.auto_submit_enabled:
        return
    run_at = deadline(attempt, test)
    try:
        schedule_at(run_at, auto_submit_attempt, str(attempt.id), job_id=auto_submit_job_id(attempt, run_at))
    except Exception:
        # Expiry is re-checked on every write, a missing job only delays scoring
        logger.exception("Could not schedule auto-submit for attempt %s", attempt.id)


# ----------------------------- Lookups ----------------------------- #

def _find_in_progress(user_id, test_id) -> Attempt | None:
    return Attempt.objects(active_key=Attempt.open_key(user_id, test_id)).first()


def get_owned_attempt(user: User, attempt_id: str | ObjectId) -> Attempt:
    attempt: Attempt | None = Attempt.objects(id=_object_id(attempt_id, "Attempt"), user=user).first()
    if not attempt:
        raise NotFoundError("Attempt not found")
    return attempt


def list_attempts(user: User, test_id: str | None = None) -> list[Attempt]:
    """The caller's attempts, newest first, optionally for one test."""
    attempts = Attempt.objects(user=user)
    if test_id:
        attempts = attempts.filter(test=_object_id(test_id, "Test"))
    return list(attempts.order_by("-started_at"))


# ----------------------------- Transitions ----------------------------- #

def _close(attempt: Attempt, status: AttemptStatus, **updates) -> bool:
    """Move an in-progress attempt to a terminal status; False if it already left."""
    now = utcnow()
    updated = Attempt.objects(id=attempt.id, status=AttemptStatus.IN_PROGRESS.value).update_one(
        set__status=status.value,
        set__active_key=attempt.closed_key(),
        set__updated_at=now,
        **updates,
    )
    return bool(updated)


def start_attempt(user: User, test_id: str | ObjectId, force_new: bool = False) -> tuple[Attempt, bool]:
    """Start or resume the user's attempt at a test.

    Returns `(attempt, created)`. Without `force_new` an in-progress attempt
    is returned untouched; with it the old one is abandoned first. Either way
    exactly one in-progress attempt exists for (user, test) afterwards.
    """
    test = get_visible_test(user, test_id)

    existing = _find_in_progress(user.id, test.id)
    if existing and not force_new:
        logger.info("Resuming attempt %s for user %s on test %s", existing.id, user.id, test.id)
        return existing, False

    if existing and _close(existing, AttemptStatus.ABANDONED):
        logger.info("Abandoned attempt %s for user %s on test %s", existing.id, user.id, test.id)

    question_order = [question.id for question in test.questions]
    random.shuffle(question_order)

    attempt = Attempt(
        user=user,
        test=test,
        status=AttemptStatus.IN_PROGRESS.value,
        started_at=utcnow(),
        question_order=question_order,
        answers={},
        total_questions=len(question_order),
        unanswered=len(question_order),
        active_key=Attempt.open_key(user.id, test.id),
    )
    try:
        attempt.save()
    except NotUniqueError:
        # A concurrent start for the same (user, test) got there first
        winner = _find_in_progress(user.id, test.id)
        if winner is None:
            raise ConflictError("Attempt is being started, please retry")
        return winner, False

    logger.info("Started attempt %s for user %s on test %s", attempt.id, user.id, test.id)
    _schedule_auto_submit(attempt, test)
    return attempt, True


def _normalize_selection(question: Question, selected: list[int]) -> list[int]:
    option_count = len(question.options or [])
    for index in selected:
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValidationError("Option indices must be integers")
        if index < 0 or index >= option_count:
            raise ValidationError(f"Option index {index} out of range")
    return sorted(set(selected))


def save_answer(user: User, attempt_id: str, question_id: str, selected: list[int]) -> Attempt:
    """Replace the stored selection for one question; an empty list clears it."""
    attempt = get_owned_attempt(user, attempt_id)
    if attempt.status != AttemptStatus.IN_PROGRESS.value:
        raise ConflictError("Attempt is not in progress")

    test = _fetch_test(attempt)
    if is_expired(attempt, test):
        raise AttemptExpiredError("Attempt time is over")

    question = next(
        (q for q in test.questions if isinstance(q, Question) and str(q.id) == str(question_id)),
        None,
    )
    if question is None:
        raise ValidationError("Question does not belong to this test")
    chosen = _normalize_selection(question, selected)

    # Raw paths: mongoengine cannot resolve a key inside DictField(ListField(IntField))
    now = utcnow()
    updated = Attempt.objects(
        id=attempt.id,
        status=AttemptStatus.IN_PROGRESS.value,
        started_at__gt=now - timedelta(minutes=test.duration_minutes),
    ).update_one(__raw__={
        "$set": {f"answers.{question.id}": chosen, "updated_at": now},
        "$inc": {"revision": 1},
    })
    if not updated:
        attempt.reload()
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise ConflictError("Attempt is not in progress")
        raise AttemptExpiredError("Attempt time is over")

    attempt.reload()
    return attempt


def persisted_result(attempt: Attempt) -> ScoreResult:
    return ScoreResult(
        score=float(attempt.score or 0),
        correct=int(attempt.correct or 0),
        incorrect=int(attempt.incorrect or 0),
        unanswered=int(attempt.unanswered or 0),
        total_questions=int(attempt.total_questions or 0),
    )


def _submit(attempt: Attempt, reason: str) -> ScoreResult:
    for _ in range(max(1, settings.submit_retry_limit)):
        if attempt.status == AttemptStatus.SUBMITTED.value:
            return persisted_result(attempt)
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise ConflictError("Attempt was abandoned")

        test = _fetch_test(attempt)
        key = AnswerKey.from_test(test)
        answers = dict(attempt.answers or {})
        result = score(key, answers)

        # Pinning the revision keeps the score in step with the answers it was computed from
        now = utcnow()
        updated = Attempt.objects(
            id=attempt.id,
            status=AttemptStatus.IN_PROGRESS.value,
            revision=attempt.revision,
        ).update_one(
            set__status=AttemptStatus.SUBMITTED.value,
            set__submitted_at=now,
            set__score=result.score,
            set__correct=result.correct,
            set__incorrect=result.incorrect,
            set__unanswered=result.unanswered,
            set__total_questions=result.total_questions,
            set__subject_scores=[AttemptSubjectScore(**bucket) for bucket in subject_breakdown(key, answers)],
            set__active_key=attempt.closed_key(),
            set__updated_at=now,
        )
        attempt.reload()
        if updated:
            logger.info(
                "Submitted attempt %s (%s): score=%s correct=%s incorrect=%s unanswered=%s",
                attempt.id, reason, result.score, result.correct, result.incorrect, result.unanswered,
            )
            return persisted_result(attempt)

    raise ConflictError("Attempt changed while submitting, please retry")


def submit_attempt(user: User, attempt_id: str) -> ScoreResult:
    """Score and close the attempt; repeated calls return the persisted result."""
    return _submit(get_owned_attempt(user, attempt_id), reason="student")


def auto_submit_attempt(attempt_id: str) -> dict | None:
    """Scheduler job fired at the attempt deadline."""
    attempt: Attempt | None = Attempt.objects(id=_object_id(attempt_id, "Attempt")).first()
    if not attempt or attempt.status != AttemptStatus.IN_PROGRESS.value:
        return None

    test = _fetch_test(attempt)
    if not is_expired(attempt, test):
        # Duration was extended after the job was queued
        logger.info("Attempt %s not expired yet, rescheduling auto-submit", attempt.id)
        _schedule_auto_submit(attempt, test)
        return None
    return _submit(attempt, reason="timer").to_dict()


def reconcile_in_progress_attempts() -> int:
    """Submit overdue attempts and re-arm timers for the rest. Returns the submit count."""
    submitted = 0
    for attempt in Attempt.objects(status=AttemptStatus.IN_PROGRESS.value):
        try:
            test = _fetch_test(attempt)
        except NotFoundError:
            logger.warning("Attempt %s references a missing test", attempt.id)
            continue
        if is_expired(attempt, test):
            _submit(attempt, reason="reconcile")
            submitted += 1
        else:
            _schedule_auto_submit(attempt, test)
    return submitted


# ----------------------------- Views ----------------------------- #

def describe_attempt(attempt: Attempt, test: Test | None = None, with_questions: bool = False) -> dict:
    """Attempt payload with server-derived timer fields, optionally with its questions."""
    test = test or _fetch_test(attempt)
    output = attempt.to_dict()
    if not test.answer_key_published:
        output["subject_scores"] = []
    output["expires_at"] = deadline(attempt, test).isoformat()
    output["remaining_seconds"] = remaining_seconds(attempt, test)
    output["expired"] = attempt.status == AttemptStatus.IN_PROGRESS.value and is_expired(attempt, test)
    output["test"] = {
        "id": str(test.id),
        "title": test.title,
        "duration_minutes": test.duration_minutes,
        "total_marks": test.total_marks,
        "negative_marking": test.negative_marking,
    }

    if with_questions:
        reveal = attempt.status == AttemptStatus.SUBMITTED.value and bool(test.answer_key_published)
        by_id = {str(q.id): q for q in test.questions if isinstance(q, Question)}
        output["questions"] = [
            by_id[str(qid)].to_output(reveal_answer=reveal)
            for qid in attempt.question_order
            if str(qid) in by_id
        ]
    return output


def get_attempt(user: User, attempt_id: str) -> dict:
    attempt = get_owned_attempt(user, attempt_id)
    return describe_attempt(attempt, with_questions=True)
