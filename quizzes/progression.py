"""
Quiz progression

Drives one player through a quiz's questions in order. ``submit_answer`` is
the pure state transition; ``ProgressionEngine`` wraps it with persistence in
the store, the retake policy and per-(player, quiz) serialization.

States: NotStarted (no progress row) -> InProgress(i) -> Complete(score).
The only way back from Complete is ``retake``.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional, Tuple
from zlib import crc32

from config import QUIZ_CONFIG
from .errors import ConflictError, NotFoundError, ProgressionCompleteError, RetakeNotAllowedError, ValidationError
from .models import Attempt, ProgressionState, Quiz, mask_wallet_address, utc_now
from .store import QuizStore

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


@dataclass(frozen=True)
class SubmissionResult:
    state: ProgressionState
    correct: bool
    timed_out: bool
    attempt: Optional[Attempt] = None

    @property
    def finished(self) -> bool:
        return self.attempt is not None


def validate_answer_index(answer_index) -> Optional[int]:
    if answer_index is None:
        return None
    if isinstance(answer_index, bool) or not isinstance(answer_index, int):
        raise ValidationError("answerIndex must be an integer or null")
    if not 0 <= answer_index < QUIZ_CONFIG['OPTIONS_PER_QUESTION']:
        raise ValidationError(f"answerIndex must be between 0 and {QUIZ_CONFIG['OPTIONS_PER_QUESTION'] - 1}")
    return answer_index


def submit_answer(state: ProgressionState, quiz: Quiz, answer_index: Optional[int] = None,
                  now: Optional[datetime] = None) -> SubmissionResult:
    """
    Apply one answer (or a timeout when answer_index is None) to a progression.

    The question index always advances; only a matching option scores. When
    the last question is answered the result carries the finished Attempt.
    """
    if state.quiz_id != quiz.id:
        raise ValidationError("Progression does not belong to this quiz")
    if state.current_question_index >= quiz.total_questions:
        raise ProgressionCompleteError("Quiz already completed. No more answers accepted.")

    answer_index = validate_answer_index(answer_index)
    question = quiz.questions[state.current_question_index]

    if answer_index is None:
        new_state = state.advance(selected=None, correct=False)
        correct = False
    else:
        selected = question.options[answer_index]
        correct = selected == question.correct_answer
        new_state = state.advance(selected=selected, correct=correct)

    attempt = None
    if new_state.is_complete(quiz):
        new_state = replace(new_state, completed_at=now or utc_now())
        attempt = completion_attempt(new_state)

    return SubmissionResult(state=new_state, correct=correct, timed_out=answer_index is None, attempt=attempt)


def completion_attempt(state: ProgressionState) -> Attempt:
    """The Attempt a completed progression stands for; the same state always yields the same key"""
    time_taken = max(0.0, (state.completed_at - state.started_at).total_seconds())
    return Attempt(
        quiz_id=state.quiz_id,
        player_address=state.player_id,
        score=state.score,
        completed_at=state.completed_at,
        time_taken_seconds=time_taken,
    )


class ProgressionEngine:
    """Persistent progression on top of a QuizStore"""

    def __init__(self, store: QuizStore, clock: Callable[[], datetime] = utc_now,
                 allow_retake_after_perfect: Optional[bool] = None):
        self.store = store
        self.clock = clock
        self._allow_retake_after_perfect = allow_retake_after_perfect
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @property
    def allow_retake_after_perfect(self) -> bool:
        if self._allow_retake_after_perfect is not None:
            return self._allow_retake_after_perfect
        return QUIZ_CONFIG['ALLOW_RETAKE_AFTER_PERFECT']

    def _lock_for(self, quiz_id: str, player_id: str) -> threading.Lock:
        key = f"{player_id}-{quiz_id}".encode('utf-8')
        return self._locks[crc32(key) % LOCK_STRIPES]

    def load_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.store.get_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        return quiz

    def has_perfect_attempt(self, quiz: Quiz, player_id: str) -> bool:
        return any(quiz.is_perfect(a.score) for a in self.store.get_attempts(quiz.id, player_id))

    def can_retake(self, quiz: Quiz, player_id: str) -> bool:
        return self.allow_retake_after_perfect or not self.has_perfect_attempt(quiz, player_id)

    def ensure_can_attempt(self, quiz: Quiz, player_id: str):
        if not self.can_retake(quiz, player_id):
            logger.warning(f"⚠️ Retake blocked for {mask_wallet_address(player_id)} on {quiz.id}: perfect score on record")
            raise RetakeNotAllowedError("You have a perfect score and cannot retake this quiz.")

    def record_attempt(self, attempt: Attempt) -> bool:
        """Store a completion Attempt; False when that exact Attempt is already on record"""
        try:
            self.store.put_attempt(attempt)
        except ConflictError:
            logger.info(f"ℹ️ Attempt already recorded for {mask_wallet_address(attempt.player_address)} on {attempt.quiz_id}")
            return False
        return True

    def record_external_attempt(self, quiz: Quiz, attempt: Attempt) -> Attempt:
        """Policy check and insert for a client-reported Attempt, serialized with play on the same key"""
        with self._lock_for(quiz.id, attempt.player_address):
            self.ensure_can_attempt(quiz, attempt.player_address)
            return self.store.put_attempt(attempt)

    def get_state(self, quiz_id: str, player_id: str) -> Tuple[Quiz, Optional[ProgressionState]]:
        quiz = self.load_quiz(quiz_id)
        return quiz, self.store.get_progress(quiz_id, player_id)

    def start(self, quiz_id: str, player_id: str) -> Tuple[Quiz, ProgressionState, bool]:
        """Return the player's progression, creating it on first use"""
        quiz = self.load_quiz(quiz_id)

        with self._lock_for(quiz_id, player_id):
            existing = self.store.get_progress(quiz_id, player_id)
            if existing is not None:
                return quiz, existing, False

            self.ensure_can_attempt(quiz, player_id)
            state = self.store.save_progress(ProgressionState.start(quiz_id, player_id, self.clock()), 0)

        logger.info(f"🎯 Started quiz {quiz_id} for {mask_wallet_address(player_id)}")
        return quiz, state, True

    def submit(self, quiz_id: str, player_id: str, answer_index: Optional[int] = None) -> SubmissionResult:
        quiz = self.load_quiz(quiz_id)

        with self._lock_for(quiz_id, player_id):
            state = self.store.get_progress(quiz_id, player_id)
            if state is None:
                raise NotFoundError("Quiz not started. Start the quiz before answering.")

            if state.is_complete(quiz) and state.completed_at is not None:
                # Re-emit in case the first completion's Attempt write failed
                self.record_attempt(completion_attempt(state))

            result = submit_answer(state, quiz, answer_index, now=self.clock())

            # Progress first: only the writer holding the current version emits the Attempt
            saved = self.store.save_progress(result.state, state.version)

            if result.attempt is not None:
                self.record_attempt(result.attempt)

        if result.attempt is not None:
            logger.info(f"🏁 Quiz {quiz_id} completed by {mask_wallet_address(player_id)}: "
                        f"{result.attempt.score}/{quiz.total_questions} in {result.attempt.time_taken_seconds:.1f}s")

        return SubmissionResult(state=saved, correct=result.correct, timed_out=result.timed_out,
                                attempt=result.attempt)

    def retake(self, quiz_id: str, player_id: str) -> Tuple[Quiz, ProgressionState]:
        """Complete -> InProgress(0), subject to the retake policy"""
        quiz = self.load_quiz(quiz_id)

        with self._lock_for(quiz_id, player_id):
            existing = self.store.get_progress(quiz_id, player_id)
            self.ensure_can_attempt(quiz, player_id)

            if existing is None:
                state = self.store.save_progress(ProgressionState.start(quiz_id, player_id, self.clock()), 0)
            elif not existing.is_complete(quiz):
                return quiz, existing
            else:
                fresh = ProgressionState.start(quiz_id, player_id, self.clock())
                state = self.store.save_progress(fresh, existing.version)

        logger.info(f"🔄 Retake started for {mask_wallet_address(player_id)} on {quiz_id}")
        return quiz, state
