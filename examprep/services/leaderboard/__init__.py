"""Read-only rankings and analytics derived from submitted attempts.

Nothing here is maintained incrementally: every call recomputes from the
attempts collection. Only submitted attempts count, and only a user's first
submitted attempt per test (earliest start) takes part in rankings.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Iterable

from bson.objectid import ObjectId

from examprep.models.base import as_utc
from examprep.models.user import User
from examprep.models.test import Test
from examprep.models.batch import Batch
from examprep.models.attempt import Attempt, AttemptStatus
from examprep.models.question import Question
from examprep.services.attempts import get_test
from examprep.services.scoring import AnswerKey, CORRECT, grade
from examprep.utils.base import NotFoundError


@dataclass(frozen=True)
class AttemptRecord:
    """What a submitted attempt exposes to rankings and analytics."""
    attempt_id: str
    user_id: str
    test_id: str
    score: float
    correct: int
    incorrect: int
    unanswered: int
    time_taken_seconds: float
    started_at: datetime
    submitted_at: datetime | None

    @property
    def total_questions(self) -> int:
        return self.correct + self.incorrect + self.unanswered

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["submitted_at"] = self.submitted_at.isoformat() if self.submitted_at else None
        return data


@dataclass(frozen=True)
class RankedRecord:
    rank: int
    percentile: float
    record: AttemptRecord


@dataclass(frozen=True)
class Tier:
    level: int
    name: str
    icon: str


@dataclass
class UserStanding:
    user_id: str
    total_score: float = 0.0
    tests_completed: int = 0
    total_correct: int = 0
    total_questions: int = 0

    @property
    def avg_accuracy(self) -> float:
        if self.total_questions <= 0:
            return 0.0
        return self.total_correct / self.total_questions * 100


def attempt_record(attempt: Attempt) -> AttemptRecord:
    return AttemptRecord(
        attempt_id=str(attempt.id),
        user_id=str(attempt.user.pk),
        test_id=str(attempt.test.pk),
        score=float(attempt.score or 0),
        correct=int(attempt.correct or 0),
        incorrect=int(attempt.incorrect or 0),
        unanswered=int(attempt.unanswered or 0),
        time_taken_seconds=attempt.time_taken_seconds or 0.0,
        started_at=as_utc(attempt.started_at),
        submitted_at=as_utc(attempt.submitted_at),
    )


def first_attempts(records: Iterable[AttemptRecord]) -> list[AttemptRecord]:
    """Keep the earliest-started record per (user, test)."""
    first: dict[tuple[str, str], AttemptRecord] = {}
    for record in records:
        key = (record.user_id, record.test_id)
        current = first.get(key)
        if current is None or record.started_at < current.started_at:
            first[key] = record
    return list(first.values())


def rank_records(records: Iterable[AttemptRecord]) -> list[RankedRecord]:
    """Dense ranks by score desc, then time taken asc.

    Records equal on both keys share a rank; the next distinct record takes
    the following integer. Percentile is the share of participants ranked
    strictly below.
    """
    ordered = sorted(records, key=lambda r: (-r.score, r.time_taken_seconds))
    total = len(ordered)
    ranked: list[RankedRecord] = []
    rank = 0
    previous = None
    for record in ordered:
        sort_key = (record.score, record.time_taken_seconds)
        if sort_key != previous:
            rank += 1
            previous = sort_key
        percentile = round(100.0 * (total - rank) / total, 4)
        ranked.append(RankedRecord(rank=rank, percentile=percentile, record=record))
    return ranked


def calculate_tier(tests_completed: int, avg_accuracy: float, is_top_ten: bool) -> Tier:
    if tests_completed >= 100 and avg_accuracy > 85 and is_top_ten:
        return Tier(6, "Legend", "Flame")
    if tests_completed >= 51 and avg_accuracy > 80:
        return Tier(5, "Subject Master", "Crown")
    if tests_completed >= 31 and avg_accuracy > 70:
        return Tier(4, "Test Champion", "Trophy")
    if tests_completed >= 16 and avg_accuracy > 60:
        return Tier(3, "Consistent Performer", "TrendingUp")
    if tests_completed >= 6 and avg_accuracy > 50:
        return Tier(2, "Quick Learner", "Zap")
    if tests_completed >= 1:
        return Tier(1, "Rising Star", "Star")
    return Tier(0, "Newcomer", "User")


def aggregate_by_user(records: Iterable[AttemptRecord]) -> list[UserStanding]:
    """Per-user totals, highest total score first."""
    standings: dict[str, UserStanding] = {}
    for record in records:
        standing = standings.setdefault(record.user_id, UserStanding(user_id=record.user_id))
        standing.total_score += record.score
        standing.tests_completed += 1
        standing.total_correct += record.correct
        standing.total_questions += record.total_questions
    return sorted(standings.values(), key=lambda s: -s.total_score)


def _submitted_records(**filters) -> list[AttemptRecord]:
    attempts = Attempt.objects(status=AttemptStatus.SUBMITTED.value, **filters)
    return first_attempts(attempt_record(attempt) for attempt in attempts)


def _users_by_id(user_ids: Iterable[str]) -> dict[str, User]:
    ids = [ObjectId(user_id) for user_id in set(user_ids)]
    return {str(user.id): user for user in User.objects(id__in=ids)}


# ----------------------------- Per test ----------------------------- #

def ranking_for_test(test: Test) -> list[RankedRecord]:
    return rank_records(_submitted_records(test=test.id))


def leaderboard_for_test(test_id: str, limit: int | None = None) -> list[dict]:
    """Top entries for a test; empty until the answer key is published."""
    test = get_test(test_id)
    if not test.answer_key_published:
        return []

    ranked = ranking_for_test(test)
    if limit is not None:
        ranked = ranked[:limit]
    users = _users_by_id(entry.record.user_id for entry in ranked)

    entries = []
    for entry in ranked:
        user = users.get(entry.record.user_id)
        entries.append({
            "rank": entry.rank,
            "percentile": entry.percentile,
            "user_name": user.name if user else "Unknown",
            **entry.record.to_dict(),
        })
    return entries


def rank_in_test(test_id: str, user_id: str) -> dict:
    test = get_test(test_id)
    if not test.answer_key_published:
        return {"rank": None, "percentile": None, "total_participants": 0}

    ranked = ranking_for_test(test)
    mine = next((entry for entry in ranked if entry.record.user_id == str(user_id)), None)
    return {
        "rank": mine.rank if mine else None,
        "percentile": mine.percentile if mine else None,
        "total_participants": len(ranked),
    }


# Upper bound (percent of total marks) for each bucket; the last one is open
SCORE_BANDS = (("0-20%", 20), ("21-40%", 40), ("41-60%", 60), ("61-80%", 80), ("81-100%", None))


def score_band(score: float, total_marks: float) -> str:
    percentage = score / total_marks * 100 if total_marks else 0
    for label, upper in SCORE_BANDS:
        if upper is None or percentage <= upper:
            return label


def _first_submitted_attempts(**filters) -> list[Attempt]:
    attempts = {
        str(attempt.id): attempt
        for attempt in Attempt.objects(status=AttemptStatus.SUBMITTED.value, **filters)
    }
    records = first_attempts(attempt_record(attempt) for attempt in attempts.values())
    return [attempts[record.attempt_id] for record in records]


def analytics_for_test(test_id: str) -> dict:
    """Score spread, per-question success rate and score distribution over first attempts.

    Hidden, like the leaderboard, until the answer key is published.
    """
    test = get_test(test_id)
    attempts = _first_submitted_attempts(test=test.id) if test.answer_key_published else []
    if not attempts:
        return {
            "total_attempts": 0,
            "average_score": 0,
            "highest_score": 0,
            "lowest_score": 0,
            "question_wise_analysis": [],
            "score_distribution": [],
        }

    scores = [float(attempt.score or 0) for attempt in attempts]
    key = AnswerKey.from_test(test)
    texts = {str(q.id): q.text for q in test.questions if isinstance(q, Question)}

    questions = []
    for entry in key.entries:
        if entry.correct is None:
            continue
        correct_attempts = sum(
            1 for attempt in attempts
            if grade(entry, (attempt.answers or {}).get(entry.question_id)) == CORRECT
        )
        text = texts[entry.question_id]
        questions.append({
            "question_id": entry.question_id,
            "question_text": text if len(text) <= 50 else text[:50] + "...",
            "correct_attempts": correct_attempts,
            "total_attempts": len(attempts),
            "success_rate": correct_attempts / len(attempts) * 100,
        })

    distribution = {label: 0 for label, _ in SCORE_BANDS}
    for value in scores:
        distribution[score_band(value, test.total_marks)] += 1

    return {
        "total_attempts": len(attempts),
        "average_score": sum(scores) / len(scores),
        "highest_score": max(scores),
        "lowest_score": min(scores),
        "question_wise_analysis": questions,
        "score_distribution": [{"range": label, "count": count} for label, count in distribution.items()],
    }


# ----------------------------- Across tests ----------------------------- #

def _published_test_ids() -> list[ObjectId]:
    return list(Test.objects(answer_key_published=True).scalar("id"))


def global_leaderboard(limit: int | None = None, user_ids: list[ObjectId] | None = None) -> list[dict]:
    """Per-user totals over first attempts at tests with a published key.

    Suspended users and users who opted out are left off, but the top-ten
    cut used for the Legend tier is taken before that filter.
    """
    filters = {"test__in": _published_test_ids()}
    if user_ids is not None:
        filters["user__in"] = user_ids
    standings = aggregate_by_user(_submitted_records(**filters))

    top_ten = {standing.user_id for standing in standings[:10]}
    users = _users_by_id(standing.user_id for standing in standings)
    visible = [
        standing for standing in standings
        if standing.user_id in users
        and not users[standing.user_id].is_suspended
        and users[standing.user_id].show_on_leaderboard
    ]
    if limit is not None:
        visible = visible[:limit]

    rows = []
    for position, standing in enumerate(visible, start=1):
        user = users[standing.user_id]
        tier = calculate_tier(standing.tests_completed, standing.avg_accuracy, standing.user_id in top_ten)
        rows.append({
            "rank": position,
            "user_id": standing.user_id,
            "user_name": user.name,
            "batch": str(user.batch.id) if user.batch else None,
            "total_score": standing.total_score,
            "tests_completed": standing.tests_completed,
            "avg_accuracy": standing.avg_accuracy,
            "tier": asdict(tier),
        })
    return rows


def batch_leaderboard(batch_id: str, limit: int | None = None) -> list[dict]:
    if not ObjectId.is_valid(batch_id):
        raise NotFoundError("Batch not found")
    batch: Batch | None = Batch.objects(id=batch_id).first()
    if not batch:
        raise NotFoundError("Batch not found")
    member_ids = list(User.objects(batch=batch).scalar("id"))
    return global_leaderboard(limit=limit, user_ids=member_ids)


def student_summary(user: User, recent: int = 5) -> dict:
    """Totals and subject-wise accuracy over the user's first attempts."""
    records = _submitted_records(user=user.id, test__in=_published_test_ids())
    if not records:
        return {
            "total_tests_taken": 0,
            "average_score": 0,
            "total_correct": 0,
            "total_incorrect": 0,
            "subject_wise_performance": {},
            "recent_attempts": [],
        }

    attempts = {
        str(attempt.id): attempt
        for attempt in Attempt.objects(id__in=[ObjectId(r.attempt_id) for r in records])
    }
    subjects: dict[str, dict] = {}
    for attempt in attempts.values():
        for bucket in attempt.subject_scores:
            totals = subjects.setdefault(bucket.subject, {"correct": 0, "total": 0})
            totals["correct"] += bucket.correct
            totals["total"] += bucket.total

    latest = sorted(records, key=lambda r: r.submitted_at or r.started_at, reverse=True)[:recent]
    titles = {
        str(test.id): test.title
        for test in Test.objects(id__in=[ObjectId(r.test_id) for r in latest]).only("title")
    }
    return {
        "total_tests_taken": len(records),
        "average_score": sum(r.score for r in records) / len(records),
        "total_correct": sum(r.correct for r in records),
        "total_incorrect": sum(r.incorrect for r in records),
        "subject_wise_performance": subjects,
        "recent_attempts": [
            {**r.to_dict(), "test_title": titles.get(r.test_id, "Unknown Test")}
            for r in latest
        ],
    }


def performance_trend(user: User, limit: int = 10) -> list[dict]:
    """The user's latest first attempts on tests with a published key, oldest first."""
    records = _submitted_records(user=user.id, test__in=_published_test_ids())
    latest = sorted(records, key=lambda r: r.started_at, reverse=True)[:limit]
    titles = {
        str(test.id): test.title
        for test in Test.objects(id__in=[ObjectId(r.test_id) for r in latest]).only("title")
    }

    trend = []
    for record in reversed(latest):
        accuracy = record.correct / record.total_questions * 100 if record.total_questions else 0
        trend.append({
            "attempt_id": record.attempt_id,
            "test_id": record.test_id,
            "test_title": titles.get(record.test_id, "Unknown Test"),
            "score": record.score,
            "accuracy": round(accuracy),
            "submitted_at": record.submitted_at.isoformat() if record.submitted_at else None,
        })
    return trend
