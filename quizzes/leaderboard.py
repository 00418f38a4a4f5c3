"""
Leaderboard aggregation

Players are ranked by learning efficiency: how many attempts they needed to
reach a perfect score, then how much time it took them.
"""
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from config import QUIZ_CONFIG
from .errors import NotFoundError, ValidationError
from .models import Attempt, LeaderboardEntry, mask_wallet_address
from .store import QuizStore

logger = logging.getLogger(__name__)

TIME_MODE_OBSERVED = 'observed'
TIME_MODE_DURATIONS = 'durations'
TIME_MODES = (TIME_MODE_OBSERVED, TIME_MODE_DURATIONS)


def group_attempts_by_player(attempts: List[Attempt]) -> Dict[str, List[Attempt]]:
    groups = OrderedDict()
    for attempt in attempts:
        groups.setdefault(attempt.player_address, []).append(attempt)
    for address, player_attempts in groups.items():
        player_attempts.sort(key=lambda a: a.completed_at)
    return groups


def total_time_seconds(player_attempts: List[Attempt], mode: str = TIME_MODE_OBSERVED) -> float:
    """
    Time a player spent on a quiz.

    'observed': wall-clock span between first and last attempt plus every
    attempt's own duration, 0 for a single attempt (the span overlaps the
    durations, so time is counted twice).
    'durations': sum of the recorded attempt durations only.
    """
    if mode == TIME_MODE_DURATIONS:
        return float(sum(a.time_taken_seconds for a in player_attempts))

    if len(player_attempts) <= 1:
        return 0.0

    span = (player_attempts[-1].completed_at - player_attempts[0].completed_at).total_seconds()
    return span + sum(a.time_taken_seconds for a in player_attempts)


def compute_leaderboard(attempts: List[Attempt], total_questions: int,
                        time_mode: Optional[str] = None) -> List[LeaderboardEntry]:
    time_mode = time_mode or QUIZ_CONFIG['LEADERBOARD_TIME_MODE']
    if time_mode not in TIME_MODES:
        raise ValidationError(f"Unknown leaderboard time mode: {time_mode}")

    ranked = []
    for address, player_attempts in group_attempts_by_player(attempts).items():
        attempts_until_perfect = len(player_attempts)
        perfect = False
        for i, attempt in enumerate(player_attempts):
            if attempt.score == total_questions:
                attempts_until_perfect = i + 1
                perfect = True
                break

        entry = LeaderboardEntry(
            display_address=mask_wallet_address(address),
            attempts_until_perfect=attempts_until_perfect,
            total_time_seconds=total_time_seconds(player_attempts, time_mode),
            perfect=perfect,
        )
        ranked.append((entry.attempts_until_perfect, entry.total_time_seconds, address, entry))

    ranked.sort(key=lambda item: item[:3])
    return [item[3] for item in ranked]


class LeaderboardService:
    def __init__(self, store: QuizStore):
        self.store = store

    def get_leaderboard(self, quiz_id: str, time_mode: Optional[str] = None) -> List[LeaderboardEntry]:
        quiz = self.store.get_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")

        attempts = self.store.get_attempts(quiz_id)
        leaderboard = compute_leaderboard(attempts, quiz.total_questions, time_mode)
        logger.info(f"🏆 Leaderboard for {quiz_id}: {len(leaderboard)} players from {len(attempts)} attempts")
        return leaderboard
