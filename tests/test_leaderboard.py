"""
Tests for rankings and student analytics.
"""

from datetime import datetime, timedelta, timezone

import pytest

from examprep.services import attempts as attempt_service
from examprep.services import leaderboard
from examprep.services.leaderboard import AttemptRecord, calculate_tier, rank_records
from examprep.utils.base import NotFoundError


START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def _record(user_id, score, seconds, started_minutes=0, test_id="t1"):
    started_at = START + timedelta(minutes=started_minutes)
    return AttemptRecord(
        attempt_id=f"{user_id}-{started_minutes}",
        user_id=user_id,
        test_id=test_id,
        score=score,
        correct=0,
        incorrect=0,
        unanswered=0,
        time_taken_seconds=seconds,
        started_at=started_at,
        submitted_at=started_at + timedelta(seconds=seconds),
    )


class TestRankRecords:
    """Dense ranking on (score desc, time asc)."""

    def test_ties_share_rank_and_next_rank_is_dense(self):
        records = [
            _record("d", 50, 100),
            _record("c", 90, 700),
            _record("a", 90, 600),
            _record("b", 90, 600),
        ]

        ranked = rank_records(records)

        assert [(r.record.user_id, r.rank) for r in ranked][2:] == [("c", 2), ("d", 3)]
        assert {r.record.user_id for r in ranked[:2]} == {"a", "b"}
        assert [r.rank for r in ranked[:2]] == [1, 1]

    def test_faster_attempt_breaks_score_tie(self):
        ranked = rank_records([_record("slow", 80, 900), _record("fast", 80, 300)])

        assert [r.record.user_id for r in ranked] == ["fast", "slow"]
        assert [r.rank for r in ranked] == [1, 2]

    def test_percentile_counts_participants_ranked_below(self):
        records = [_record("a", 90, 600), _record("b", 90, 600), _record("c", 90, 700), _record("d", 50, 100)]

        percentiles = {r.record.user_id: r.percentile for r in rank_records(records)}

        assert percentiles == {"a": 75.0, "b": 75.0, "c": 50.0, "d": 25.0}

    def test_single_participant(self):
        (only,) = rank_records([_record("a", 10, 60)])

        assert only.rank == 1
        assert only.percentile == 0.0

    def test_empty(self):
        assert rank_records([]) == []


class TestFirstAttempts:
    def test_keeps_earliest_started_attempt(self):
        records = [
            _record("a", 99, 60, started_minutes=30),
            _record("a", 10, 60, started_minutes=0),
            _record("a", 50, 60, started_minutes=5, test_id="t2"),
        ]

        kept = leaderboard.first_attempts(records)

        assert sorted((r.test_id, r.score) for r in kept) == [("t1", 10), ("t2", 50)]


class TestCalculateTier:
    @pytest.mark.parametrize("tests_completed, accuracy, top_ten, expected", [
        (0, 0, False, "Newcomer"),
        (1, 10, False, "Rising Star"),
        (6, 50, False, "Rising Star"),
        (6, 51, False, "Quick Learner"),
        (16, 61, False, "Consistent Performer"),
        (31, 71, False, "Test Champion"),
        (51, 81, False, "Subject Master"),
        (100, 90, False, "Subject Master"),
        (100, 90, True, "Legend"),
    ])
    def test_thresholds(self, tests_completed, accuracy, top_ten, expected):
        assert calculate_tier(tests_completed, accuracy, top_ten).name == expected


class TestLeaderboardForTest:
    """Per-test leaderboard and a user's rank in it."""

    def test_orders_and_ranks_first_attempts(self, make_user, make_test, make_submitted_attempt):
        test = make_test()
        alice, bob, carol = make_user("Alice"), make_user("Bob"), make_user("Carol")
        make_submitted_attempt(alice, test, 80, correct=3, incorrect=1, minutes_taken=20)
        make_submitted_attempt(bob, test, 80, correct=3, incorrect=1, minutes_taken=10)
        make_submitted_attempt(carol, test, 40, correct=2, unanswered=2, started_ago_minutes=200)
        # a later retake does not replace the first attempt
        make_submitted_attempt(carol, test, 100, correct=4, started_ago_minutes=60)

        board = leaderboard.leaderboard_for_test(str(test.id))

        assert [(e["user_name"], e["rank"], e["score"]) for e in board] == [
            ("Bob", 1, 80), ("Alice", 2, 80), ("Carol", 3, 40),
        ]
        assert board[0]["time_taken_seconds"] == 600
        assert board[0]["percentile"] == pytest.approx(66.6667)
        assert (board[2]["correct"], board[2]["unanswered"]) == (2, 2)

    def test_limit(self, make_user, make_test, make_submitted_attempt):
        test = make_test()
        for score in (10, 20, 30):
            make_submitted_attempt(make_user(), test, score)

        board = leaderboard.leaderboard_for_test(str(test.id), limit=2)

        assert [e["score"] for e in board] == [30, 20]

    def test_in_progress_attempts_are_not_ranked(self, make_user, make_test, make_submitted_attempt):
        test = make_test()
        make_submitted_attempt(make_user(), test, 50)
        attempt_service.start_attempt(make_user(), str(test.id))

        assert len(leaderboard.leaderboard_for_test(str(test.id))) == 1

    def test_hidden_until_answer_key_published(self, make_user, make_test, make_submitted_attempt):
        test = make_test(answer_key_published=False)
        user = make_user()
        make_submitted_attempt(user, test, 50)

        assert leaderboard.leaderboard_for_test(str(test.id)) == []
        assert leaderboard.rank_in_test(str(test.id), str(user.id))["rank"] is None

    def test_rank_in_test(self, make_user, make_test, make_submitted_attempt):
        test = make_test()
        me = make_user()
        make_submitted_attempt(make_user(), test, 90)
        make_submitted_attempt(me, test, 70)
        make_submitted_attempt(make_user(), test, 50)

        assert leaderboard.rank_in_test(str(test.id), str(me.id)) == {
            "rank": 2, "percentile": pytest.approx(33.3333), "total_participants": 3,
        }

    def test_rank_for_non_participant(self, make_user, make_test, make_submitted_attempt):
        test = make_test()
        make_submitted_attempt(make_user(), test, 90)

        result = leaderboard.rank_in_test(str(test.id), str(make_user().id))

        assert result == {"rank": None, "percentile": None, "total_participants": 1}

    def test_unknown_test(self):
        with pytest.raises(NotFoundError):
            leaderboard.leaderboard_for_test("5f0000000000000000000000")


class TestGlobalLeaderboard:
    """Totals across tests with a published answer key."""

    @pytest.fixture
    def standings(self, make_user, make_test, make_batch, make_submitted_attempt):
        morning = make_batch("Morning")
        t1, t2 = make_test(title="One"), make_test(title="Two")
        unpublished = make_test(title="Three", answer_key_published=False)

        leader = make_user("Leader")
        runner_up = make_user("Runner Up", batch=morning)
        suspended = make_user("Suspended", batch=morning, is_suspended=True)
        hidden = make_user("Hidden", show_on_leaderboard=False)
        outsider = make_user("Outsider", batch=morning)

        make_submitted_attempt(leader, t1, 80, correct=8, incorrect=2)
        make_submitted_attempt(leader, t2, 70, correct=7, incorrect=3)
        make_submitted_attempt(runner_up, t1, 90, correct=9, incorrect=1)
        make_submitted_attempt(suspended, t1, 100, correct=10)
        make_submitted_attempt(hidden, t1, 95, correct=9, unanswered=1)
        make_submitted_attempt(outsider, unpublished, 100, correct=10)
        return {"morning": morning, "leader": leader, "runner_up": runner_up}

    def test_totals_and_positional_ranks(self, standings):
        board = leaderboard.global_leaderboard()

        assert [(row["rank"], row["user_name"], row["total_score"]) for row in board] == [
            (1, "Leader", 150), (2, "Runner Up", 90),
        ]
        leader = board[0]
        assert leader["tests_completed"] == 2
        assert leader["avg_accuracy"] == pytest.approx(75.0)
        assert leader["tier"]["name"] == "Rising Star"
        assert board[1]["batch"] == str(standings["morning"].id)

    def test_limit(self, standings):
        assert [row["user_name"] for row in leaderboard.global_leaderboard(limit=1)] == ["Leader"]

    def test_batch_leaderboard(self, standings):
        board = leaderboard.batch_leaderboard(str(standings["morning"].id))

        assert [(row["rank"], row["user_name"]) for row in board] == [(1, "Runner Up")]

    def test_unknown_batch(self):
        with pytest.raises(NotFoundError):
            leaderboard.batch_leaderboard("5f0000000000000000000000")
        with pytest.raises(NotFoundError):
            leaderboard.batch_leaderboard("nope")


class TestStudentSummary:
    def test_empty_history(self, make_user):
        summary = leaderboard.student_summary(make_user())

        assert summary["total_tests_taken"] == 0
        assert summary["recent_attempts"] == []

    def test_aggregates_first_attempts(self, make_user, make_question, make_test):
        user = make_user()
        questions = [
            make_question(correct=(0,), subject="physics"),
            make_question(correct=(1,), subject="maths"),
            make_question(correct=(2,), subject="maths"),
        ]
        test = make_test(questions=questions, title="Mixed", total_marks=30, negative_marking=0)
        attempt, _ = attempt_service.start_attempt(user, str(test.id))
        attempt_service.save_answer(user, str(attempt.id), str(questions[0].id), [0])
        attempt_service.save_answer(user, str(attempt.id), str(questions[1].id), [0])
        attempt_service.submit_attempt(user, str(attempt.id))

        summary = leaderboard.student_summary(user)

        assert summary["total_tests_taken"] == 1
        assert summary["average_score"] == pytest.approx(10.0)
        assert (summary["total_correct"], summary["total_incorrect"]) == (1, 1)
        assert summary["subject_wise_performance"] == {
            "physics": {"correct": 1, "total": 1},
            "maths": {"correct": 0, "total": 2},
        }
        assert summary["recent_attempts"][0]["test_title"] == "Mixed"


class TestScoreBand:
    @pytest.mark.parametrize("score, total_marks, expected", [
        (20, 100, "0-20%"),
        (-5, 100, "0-20%"),
        (20.5, 100, "21-40%"),
        (60, 100, "41-60%"),
        (80, 100, "61-80%"),
        (100, 100, "81-100%"),
        (10, 0, "0-20%"),
    ])
    def test_bands(self, score, total_marks, expected):
        assert leaderboard.score_band(score, total_marks) == expected


class TestAnalyticsForTest:
    """Per-test score spread, question success and distribution."""

    def test_hidden_until_answer_key_published(self, make_user, make_test, make_submitted_attempt):
        test = make_test(answer_key_published=False)
        make_submitted_attempt(make_user(), test, 50)

        stats = leaderboard.analytics_for_test(str(test.id))

        assert stats["total_attempts"] == 0
        assert stats["score_distribution"] == []

    def test_scores_over_first_attempts(self, make_user, make_test, make_submitted_attempt):
        test = make_test(total_marks=100)
        first = make_user()
        make_submitted_attempt(first, test, 10, unanswered=4, started_ago_minutes=300)
        make_submitted_attempt(make_user(), test, 35, unanswered=4)
        make_submitted_attempt(make_user(), test, 90, unanswered=4)
        # retake is ignored
        make_submitted_attempt(first, test, 100, correct=4, started_ago_minutes=60)

        stats = leaderboard.analytics_for_test(str(test.id))

        assert stats["total_attempts"] == 3
        assert stats["average_score"] == pytest.approx(45.0)
        assert (stats["highest_score"], stats["lowest_score"]) == (90, 10)
        assert stats["score_distribution"] == [
            {"range": "0-20%", "count": 1},
            {"range": "21-40%", "count": 1},
            {"range": "41-60%", "count": 0},
            {"range": "61-80%", "count": 0},
            {"range": "81-100%", "count": 1},
        ]
        assert [q["correct_attempts"] for q in stats["question_wise_analysis"]] == [0, 0, 0, 0]

    def test_question_success_rate(self, make_user, make_question, make_test):
        q0, q1 = make_question(correct=(0,)), make_question(correct=(1,))
        test = make_test(questions=[q0, q1])
        answers_by_user = [[(q0, [0]), (q1, [1])], [(q0, [1])]]
        for answers in answers_by_user:
            user = make_user()
            attempt, _ = attempt_service.start_attempt(user, str(test.id))
            for question, selected in answers:
                attempt_service.save_answer(user, str(attempt.id), str(question.id), selected)
            attempt_service.submit_attempt(user, str(attempt.id))

        stats = leaderboard.analytics_for_test(str(test.id))

        rows = {row["question_id"]: row for row in stats["question_wise_analysis"]}
        assert rows[str(q0.id)]["correct_attempts"] == 1
        assert rows[str(q0.id)]["success_rate"] == pytest.approx(50.0)
        assert rows[str(q1.id)]["success_rate"] == pytest.approx(50.0)
        assert rows[str(q0.id)]["total_attempts"] == 2
        assert rows[str(q0.id)]["question_text"] == q0.text


class TestPerformanceTrend:
    @pytest.fixture
    def history(self, make_user, make_test, make_submitted_attempt):
        user = make_user()
        one, two, three = make_test(title="One"), make_test(title="Two"), make_test(title="Three")
        hidden = make_test(title="Hidden", answer_key_published=False)
        make_submitted_attempt(user, one, 40, correct=2, incorrect=2, started_ago_minutes=300)
        make_submitted_attempt(user, two, 60, correct=3, incorrect=1, started_ago_minutes=200)
        make_submitted_attempt(user, three, 80, correct=4, started_ago_minutes=100)
        make_submitted_attempt(user, one, 100, correct=4, started_ago_minutes=50)
        make_submitted_attempt(user, hidden, 100, correct=4, started_ago_minutes=10)
        return user

    def test_chronological_first_attempts(self, history):
        trend = leaderboard.performance_trend(history)

        assert [(t["test_title"], t["score"], t["accuracy"]) for t in trend] == [
            ("One", 40, 50), ("Two", 60, 75), ("Three", 80, 100),
        ]

    def test_limit_keeps_the_latest(self, history):
        trend = leaderboard.performance_trend(history, limit=2)

        assert [t["test_title"] for t in trend] == ["Two", "Three"]

    def test_no_history(self, make_user):
        assert leaderboard.performance_trend(make_user()) == []
