import json
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError

from supabase_client import get_supabase_client, retry_on_connection_error
from .errors import ConflictError, UpstreamError
from .models import (
    Attempt,
    ProgressionState,
    Question,
    Quiz,
    format_timestamp,
    mask_wallet_address,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = '23505'
PAGE_SIZE = 1000  # PostgREST max-rows default; must not exceed the project setting


class QuizStore:
    """Storage capabilities the quiz services depend on"""

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        raise NotImplementedError

    def list_quizzes(self) -> List[Quiz]:
        raise NotImplementedError

    def put_quiz(self, quiz: Quiz) -> Quiz:
        """Insert a new quiz; raises ConflictError if the id exists"""
        raise NotImplementedError

    def get_attempts(self, quiz_id: str, player_address: Optional[str] = None) -> List[Attempt]:
        """Attempts for a quiz ordered by completed_at"""
        raise NotImplementedError

    def get_player_attempts(self, player_address: str) -> List[Attempt]:
        """All attempts of one player ordered by completed_at"""
        raise NotImplementedError

    def put_attempt(self, attempt: Attempt) -> Attempt:
        """Append an attempt; raises ConflictError on a duplicate natural key"""
        raise NotImplementedError

    def get_progress(self, quiz_id: str, player_id: str) -> Optional[ProgressionState]:
        raise NotImplementedError

    def save_progress(self, state: ProgressionState, expected_version: int) -> ProgressionState:
        """
        Compare-and-set write of a progression row.

        expected_version 0 inserts a new row; otherwise the stored row must
        still carry expected_version. Returns the state with its new version,
        raises ConflictError when another writer got there first.
        """
        raise NotImplementedError


def quiz_to_row(quiz: Quiz) -> Dict[str, Any]:
    return {
        'id': quiz.id,
        'title': quiz.title,
        'description': quiz.description,
        'questions': [q.to_dict() for q in quiz.questions],
        'difficulty': quiz.difficulty,
        'estimated_time': quiz.estimated_time,
        'reward_type': quiz.reward_type,
        'reward_amount': quiz.reward_amount,
        'nft_metadata': quiz.nft_metadata,
        'created_by': quiz.created_by,
        'transaction_hash': quiz.transaction_hash,
        'created_at': format_timestamp(quiz.created_at or utc_now()),
    }


def quiz_from_row(row: Dict[str, Any]) -> Quiz:
    questions = row.get('questions') or []
    if isinstance(questions, str):
        questions = json.loads(questions)

    return Quiz(
        id=row['id'],
        title=row['title'],
        questions=[Question.from_dict(q, i) for i, q in enumerate(questions)],
        description=row.get('description') or '',
        difficulty=row.get('difficulty'),
        estimated_time=row.get('estimated_time'),
        reward_type=row.get('reward_type') or 'NFT',
        reward_amount=row.get('reward_amount') or 1,
        nft_metadata=row.get('nft_metadata'),
        created_by=row.get('created_by'),
        transaction_hash=row.get('transaction_hash'),
        created_at=parse_timestamp(row['created_at']) if row.get('created_at') else None,
    )


def attempt_to_row(attempt: Attempt) -> Dict[str, Any]:
    return {
        'quiz_id': attempt.quiz_id,
        'address': attempt.player_address,
        'score': attempt.score,
        'completed_at': format_timestamp(attempt.completed_at),
        'time_taken': float(attempt.time_taken_seconds),
    }


def attempt_from_row(row: Dict[str, Any]) -> Attempt:
    return Attempt(
        quiz_id=row['quiz_id'],
        player_address=row['address'],
        score=int(row['score']),
        completed_at=parse_timestamp(row['completed_at']),
        time_taken_seconds=float(row.get('time_taken') or 0),
    )


def progress_to_row(state: ProgressionState) -> Dict[str, Any]:
    return {
        'player_id': state.player_id,
        'quiz_id': state.quiz_id,
        'current_question_index': state.current_question_index,
        'score': state.score,
        'answers_given': list(state.answers_given),
        'started_at': format_timestamp(state.started_at),
        'version': state.version,
        'completed_at': format_timestamp(state.completed_at) if state.completed_at else None,
        'updated_at': format_timestamp(utc_now()),
    }


def progress_from_row(row: Dict[str, Any]) -> ProgressionState:
    answers = row.get('answers_given') or []
    if isinstance(answers, str):
        answers = json.loads(answers)

    return ProgressionState(
        quiz_id=row['quiz_id'],
        player_id=row['player_id'],
        current_question_index=int(row['current_question_index']),
        score=int(row['score']),
        answers_given=list(answers),
        started_at=parse_timestamp(row['started_at']),
        version=int(row['version']),
        completed_at=parse_timestamp(row['completed_at']) if row.get('completed_at') else None,
    )


class SupabaseQuizStore(QuizStore):
    """QuizStore backed by the hosted Supabase (Postgres) tables"""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        if self._client is None:
            raise UpstreamError("Database not available", details="Supabase is not configured")
        return self._client

    def _execute(self, query, operation_name: str):
        try:
            return query.execute()
        except APIError as e:
            if getattr(e, 'code', None) == UNIQUE_VIOLATION:
                raise ConflictError(f"Duplicate record in {operation_name}", details=str(e.message))
            logger.error(f"❌ Supabase error in {operation_name}: {e}")
            raise UpstreamError(f"Database error in {operation_name}", details=str(e.message))
        except httpx.TransportError as e:
            # Message keeps "connection" so retry_on_connection_error retries reads
            logger.error(f"❌ Supabase connection error in {operation_name}: {e}")
            raise UpstreamError(f"Database connection error in {operation_name}", details=str(e)) from e

    def _fetch_all(self, build_query: Callable[[], Any], operation_name: str) -> List[Dict[str, Any]]:
        """Page through a select with .range(); each response is capped at the server's max-rows"""
        rows = []
        offset = 0
        while True:
            result = self._execute(build_query().range(offset, offset + PAGE_SIZE - 1), operation_name)
            page = result.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    @retry_on_connection_error(max_retries=3, delay=1)
    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        result = self._execute(
            self.client.table('quizzes').select('*').eq('id', quiz_id).limit(1),
            'get quiz'
        )
        if not result.data:
            return None
        return quiz_from_row(result.data[0])

    @retry_on_connection_error(max_retries=3, delay=1)
    def list_quizzes(self) -> List[Quiz]:
        rows = self._fetch_all(
            lambda: self.client.table('quizzes').select('*').order('created_at', desc=True),
            'list quizzes'
        )
        return [quiz_from_row(row) for row in rows]

    def put_quiz(self, quiz: Quiz) -> Quiz:
        self._execute(self.client.table('quizzes').insert(quiz_to_row(quiz)), 'insert quiz')
        logger.info(f"✅ Quiz saved: {quiz.id} ({quiz.total_questions} questions)")
        return quiz

    @retry_on_connection_error(max_retries=3, delay=1)
    def get_attempts(self, quiz_id: str, player_address: Optional[str] = None) -> List[Attempt]:
        def build_query():
            query = self.client.table('quiz_attempts')\
                .select('quiz_id, address, score, completed_at, time_taken')\
                .eq('quiz_id', quiz_id)
            if player_address:
                query = query.eq('address', player_address)
            return query.order('completed_at')

        return [attempt_from_row(row) for row in self._fetch_all(build_query, 'get attempts')]

    @retry_on_connection_error(max_retries=3, delay=1)
    def get_player_attempts(self, player_address: str) -> List[Attempt]:
        rows = self._fetch_all(
            lambda: self.client.table('quiz_attempts')
                .select('quiz_id, address, score, completed_at, time_taken')
                .eq('address', player_address)
                .order('completed_at'),
            'get player attempts'
        )
        return [attempt_from_row(row) for row in rows]

    def put_attempt(self, attempt: Attempt) -> Attempt:
        self._execute(self.client.table('quiz_attempts').insert(attempt_to_row(attempt)), 'insert attempt')
        logger.info(f"✅ Attempt saved: {attempt.quiz_id} - {mask_wallet_address(attempt.player_address)} "
                    f"- Score: {attempt.score}")
        return attempt

    @retry_on_connection_error(max_retries=3, delay=1)
    def get_progress(self, quiz_id: str, player_id: str) -> Optional[ProgressionState]:
        result = self._execute(
            self.client.table('quiz_progress')
                .select('*')
                .eq('player_id', player_id)
                .eq('quiz_id', quiz_id)
                .limit(1),
            'get progress'
        )
        if not result.data:
            return None
        return progress_from_row(result.data[0])

    def save_progress(self, state: ProgressionState, expected_version: int) -> ProgressionState:
        new_state = replace(state, answers_given=list(state.answers_given), version=expected_version + 1)
        row = progress_to_row(new_state)

        if expected_version == 0:
            self._execute(self.client.table('quiz_progress').insert(row), 'insert progress')
            return new_state

        result = self._execute(
            self.client.table('quiz_progress')
                .update(row)
                .eq('player_id', state.player_id)
                .eq('quiz_id', state.quiz_id)
                .eq('version', expected_version),
            'update progress'
        )
        if not result.data:
            raise ConflictError("Progress was updated by another request. Please reload the quiz.")
        return new_state
