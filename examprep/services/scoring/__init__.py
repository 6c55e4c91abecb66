"""Scoring engine: a pure mapping from (answer key, answers) to a result.

Nothing here touches the database. `AnswerKey.from_test` snapshots the
dereferenced test once; `score` and `subject_breakdown` can then be re-run
for auditing with identical output.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from examprep.models.test import Test
from examprep.models.question import Question


@dataclass(frozen=True)
class KeyEntry:
    question_id: str
    subject: str | None
    # None when the referenced question no longer exists
    correct: frozenset[int] | None


@dataclass(frozen=True)
class AnswerKey:
    total_marks: float
    negative_marking: float
    entries: tuple[KeyEntry, ...]

    @property
    def total_questions(self) -> int:
        return len(self.entries)

    @classmethod
    def from_test(cls, test: Test) -> "AnswerKey":
        entries = []
        for question in test.questions:
            if isinstance(question, Question):
                entries.append(KeyEntry(
                    question_id=str(question.id),
                    subject=question.subject,
                    correct=frozenset(question.correct_options),
                ))
            else:
                entries.append(KeyEntry(question_id=str(question.id), subject=None, correct=None))
        return cls(
            total_marks=float(test.total_marks or 0),
            negative_marking=float(test.negative_marking or 0),
            entries=tuple(entries),
        )


@dataclass(frozen=True)
class ScoreResult:
    score: float
    correct: int
    incorrect: int
    unanswered: int
    total_questions: int

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "unanswered": self.unanswered,
            "total_questions": self.total_questions,
        }


CORRECT = "correct"
INCORRECT = "incorrect"
UNANSWERED = "unanswered"


def grade(entry: KeyEntry, selected: Iterable[int] | None) -> str:
    """Exact set match is correct; any other non-empty selection is incorrect."""
    chosen = frozenset(selected or ())
    if not chosen or entry.correct is None:
        return UNANSWERED
    if chosen == entry.correct:
        return CORRECT
    return INCORRECT


def score(key: AnswerKey, answers: Mapping[str, Iterable[int]]) -> ScoreResult:
    """Score an answer map against a key.

    Each correct question is worth one unit, each incorrect one costs
    `negative_marking` units, and a unit is `total_marks / total_questions`.
    The result is not clamped: heavy guessing can produce a negative score.
    """
    counts = {CORRECT: 0, INCORRECT: 0, UNANSWERED: 0}
    for entry in key.entries:
        counts[grade(entry, answers.get(entry.question_id))] += 1

    total = key.total_questions
    if total == 0:
        return ScoreResult(score=0.0, correct=0, incorrect=0, unanswered=0, total_questions=0)

    units = counts[CORRECT] - counts[INCORRECT] * key.negative_marking
    unit_value = key.total_marks / total
    return ScoreResult(
        score=units * unit_value,
        correct=counts[CORRECT],
        incorrect=counts[INCORRECT],
        unanswered=counts[UNANSWERED],
        total_questions=total,
    )


def subject_breakdown(key: AnswerKey, answers: Mapping[str, Iterable[int]]) -> list[dict]:
    """Per-subject correct/incorrect/unanswered/total, in first-seen subject order."""
    buckets: dict[str, dict] = {}
    for entry in key.entries:
        if entry.subject is None:
            continue
        bucket = buckets.setdefault(entry.subject, {
            "subject": entry.subject, CORRECT: 0, INCORRECT: 0, UNANSWERED: 0, "total": 0,
        })
        bucket[grade(entry, answers.get(entry.question_id))] += 1
        bucket["total"] += 1
    return list(buckets.values())
