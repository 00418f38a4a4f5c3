# =============================================================================
# Leaderboard aggregation
# =============================================================================

from datetime import datetime, timedelta, timezone

import pytest

from conftest import OTHER_PLAYER, PLAYER
from quizzes.errors import NotFoundError, ValidationError
from quizzes.leaderboard import (
    TIME_MODE_DURATIONS,
    TIME_MODE_OBSERVED,
    LeaderboardService,
    compute_leaderboard,
    total_time_seconds,
)
from quizzes.models import Attempt

BASE = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def attempt(player, score, minutes, time_taken, quiz_id="quiz-1"):
    return Attempt(quiz_id, player, score, BASE + timedelta(minutes=minutes), float(time_taken))


class TestComputeLeaderboard:

    def test_second_attempt_perfect(self):
        attempts = [attempt(PLAYER, 2, 0, 30), attempt(PLAYER, 3, 10, 20)]

        [entry] = compute_leaderboard(attempts, 3, TIME_MODE_OBSERVED)

        assert entry.attempts_until_perfect == 2
        assert entry.perfect is True
        assert entry.total_time_seconds == 600 + 30 + 20

    def test_single_perfect_attempt(self):
        [entry] = compute_leaderboard([attempt(PLAYER, 3, 0, 45)], 3, TIME_MODE_OBSERVED)

        assert entry.attempts_until_perfect == 1
        assert entry.total_time_seconds == 0
        assert entry.perfect is True

    def test_never_perfect_counts_all_attempts(self):
        attempts = [attempt(PLAYER, 1, 0, 10), attempt(PLAYER, 2, 5, 10), attempt(PLAYER, 0, 9, 10)]

        [entry] = compute_leaderboard(attempts, 3, TIME_MODE_OBSERVED)

        assert entry.attempts_until_perfect == 3
        assert entry.perfect is False

    def test_equal_attempts_ordered_by_time(self):
        slow = [attempt(PLAYER, 1, 0, 50), attempt(PLAYER, 3, 30, 50)]
        fast = [attempt(OTHER_PLAYER, 1, 0, 10), attempt(OTHER_PLAYER, 3, 2, 10)]

        entries = compute_leaderboard(slow + fast, 3, TIME_MODE_OBSERVED)

        assert [e.display_address for e in entries] == ["0xabcd...9999", "0x1234...5678"]

    def test_fewer_attempts_rank_first(self):
        two = [attempt(PLAYER, 1, 0, 1), attempt(PLAYER, 3, 1, 1)]
        one = [attempt(OTHER_PLAYER, 3, 0, 500)]

        entries = compute_leaderboard(two + one, 3, TIME_MODE_OBSERVED)

        assert [e.attempts_until_perfect for e in entries] == [1, 2]

    def test_input_order_does_not_matter(self):
        attempts = [attempt(PLAYER, 3, 20, 5), attempt(OTHER_PLAYER, 3, 0, 9), attempt(PLAYER, 1, 0, 5)]

        forward = compute_leaderboard(attempts, 3, TIME_MODE_OBSERVED)
        backward = compute_leaderboard(list(reversed(attempts)), 3, TIME_MODE_OBSERVED)

        assert forward == backward
        assert compute_leaderboard(attempts, 3, TIME_MODE_OBSERVED) == forward

    def test_full_address_breaks_exact_ties(self):
        a = "0x1111000000000000000000000000000000002222"
        b = "0x1111000000000000000000000000000000001222"

        entries = compute_leaderboard([attempt(a, 3, 0, 5), attempt(b, 3, 0, 5)], 3, TIME_MODE_OBSERVED)

        assert [e.display_address for e in entries] == ["0x1111...1222", "0x1111...2222"]

    def test_durations_mode_sums_attempt_times(self):
        attempts = [attempt(PLAYER, 2, 0, 30), attempt(PLAYER, 3, 10, 20)]

        [entry] = compute_leaderboard(attempts, 3, TIME_MODE_DURATIONS)

        assert entry.total_time_seconds == 50

    def test_unknown_mode(self):
        with pytest.raises(ValidationError):
            compute_leaderboard([attempt(PLAYER, 3, 0, 5)], 3, "wallclock")

    def test_empty_input(self):
        assert compute_leaderboard([], 3, TIME_MODE_OBSERVED) == []

    def test_to_dict_shape(self):
        [entry] = compute_leaderboard([attempt(PLAYER, 3, 0, 5)], 3, TIME_MODE_OBSERVED)

        assert entry.to_dict() == {
            'address': '0x1234...5678',
            'attemptsUntilPerfect': 1,
            'totalTime': 0.0,
            'perfect': True,
        }


class TestTotalTime:

    def test_observed_single_attempt_is_zero(self):
        assert total_time_seconds([attempt(PLAYER, 1, 0, 99)], TIME_MODE_OBSERVED) == 0

    def test_observed_adds_span_and_durations(self):
        attempts = [attempt(PLAYER, 1, 0, 10), attempt(PLAYER, 1, 1, 10), attempt(PLAYER, 1, 2, 10)]
        assert total_time_seconds(attempts, TIME_MODE_OBSERVED) == 120 + 30


class TestLeaderboardService:

    def test_unknown_quiz(self, store):
        with pytest.raises(NotFoundError):
            LeaderboardService(store).get_leaderboard("missing")

    def test_uses_stored_question_count(self, store, quiz):
        store.put_attempt(attempt(PLAYER, 2, 0, 10))
        store.put_attempt(attempt(PLAYER, 3, 5, 10))

        [entry] = LeaderboardService(store).get_leaderboard(quiz.id, TIME_MODE_OBSERVED)

        assert entry.attempts_until_perfect == 2
