"""
Quiz data model

Wire format (JSON bodies) uses camelCase keys; the Supabase adapter maps
these to snake_case columns.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import QUIZ_CONFIG
from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Parse an ISO timestamp (with or without Z suffix) into an aware UTC datetime"""
    if isinstance(value, datetime):
        parsed = value
    else:
        if not isinstance(value, str) or not value:
            raise ValidationError(f"Invalid timestamp: {value!r}")
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        # Naive values coming back from the database are UTC
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def mask_wallet_address(wallet_address: str) -> str:
    """Shorten an address to first6...last4 for display and logs"""
    if not wallet_address or len(wallet_address) <= 10:
        return wallet_address
    return wallet_address[:6] + "..." + wallet_address[-4:]


@dataclass(frozen=True)
class Question:
    id: str
    question: str
    options: List[str]
    correct_answer: str
    explanation: str = ''
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> 'Question':
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid question format at index {index}")

        options = data.get('options')
        correct_answer = data.get('correctAnswer', data.get('correct_answer'))
        explanation = data.get('explanation', '')
        tags = data.get('tags', [])

        if (
            not data.get('id')
            or not isinstance(data.get('question'), str)
            or not isinstance(options, list)
            or len(options) != QUIZ_CONFIG['OPTIONS_PER_QUESTION']
            or not all(isinstance(opt, str) for opt in options)
            or not isinstance(correct_answer, str)
            or correct_answer not in options
            or not isinstance(explanation, str)
            or not isinstance(tags, list)
        ):
            raise ValidationError(f"Invalid question format at index {index}")

        return cls(
            id=str(data['id']),
            question=data['question'],
            options=list(options),
            correct_answer=correct_answer,
            explanation=explanation,
            tags=[str(tag) for tag in tags],
        )

    def to_dict(self, include_answer: bool = True) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'question': self.question,
            'options': list(self.options),
            'tags': list(self.tags),
        }
        if include_answer:
            data['correctAnswer'] = self.correct_answer
            data['explanation'] = self.explanation
        return data


@dataclass(frozen=True)
class Quiz:
    id: str
    title: str
    questions: List[Question]
    description: str = ''
    difficulty: Optional[str] = None
    estimated_time: Optional[int] = None
    reward_type: str = 'NFT'
    reward_amount: int = 1
    nft_metadata: Optional[str] = None
    created_by: Optional[str] = None
    transaction_hash: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def is_perfect(self, score: int) -> bool:
        return score == self.total_questions

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quiz':
        if not isinstance(data, dict):
            raise ValidationError("Invalid quiz data")

        quiz_id = data.get('id')
        title = data.get('title')
        questions = data.get('questions')

        if not quiz_id or not isinstance(quiz_id, str):
            raise ValidationError("Quiz id is required")
        if not title or not isinstance(title, str):
            raise ValidationError("Quiz title is required")
        if not isinstance(questions, list) or not questions:
            raise ValidationError("Quiz must contain at least one question")

        created_at = data.get('createdAt')
        return cls(
            id=quiz_id,
            title=title,
            questions=[Question.from_dict(q, i) for i, q in enumerate(questions)],
            description=data.get('description') or '',
            difficulty=data.get('difficulty'),
            estimated_time=data.get('estimatedTime'),
            reward_type=data.get('rewardType') or QUIZ_CONFIG['REWARD_TYPE'],
            reward_amount=data.get('rewardAmount') or QUIZ_CONFIG['REWARD_AMOUNT'],
            nft_metadata=data.get('nftMetadata'),
            created_by=data.get('createdBy'),
            transaction_hash=data.get('transactionHash'),
            created_at=parse_timestamp(created_at) if created_at else None,
        )

    def to_dict(self, include_answers: bool = True) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'questions': [q.to_dict(include_answer=include_answers) for q in self.questions],
            'difficulty': self.difficulty,
            'estimatedTime': self.estimated_time,
            'rewardType': self.reward_type,
            'rewardAmount': self.reward_amount,
            'nftMetadata': self.nft_metadata,
            'createdBy': self.created_by,
            'transactionHash': self.transaction_hash,
            'createdAt': format_timestamp(self.created_at) if self.created_at else None,
        }


@dataclass(frozen=True)
class Attempt:
    quiz_id: str
    player_address: str
    score: int
    completed_at: datetime
    time_taken_seconds: float

    def __post_init__(self):
        if isinstance(self.score, bool) or not isinstance(self.score, int) or self.score < 0:
            raise ValidationError("score must be a non-negative integer")
        if isinstance(self.time_taken_seconds, bool) or not isinstance(self.time_taken_seconds, (int, float)) \
                or self.time_taken_seconds < 0:
            raise ValidationError("timeTaken must be a non-negative number")

    @property
    def key(self):
        return (self.quiz_id, self.player_address, self.completed_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'quizId': self.quiz_id,
            'address': self.player_address,
            'score': self.score,
            'completedAt': format_timestamp(self.completed_at),
            'timeTaken': self.time_taken_seconds,
        }


@dataclass(frozen=True)
class ProgressionState:
    """In-flight position of one player within one quiz"""
    quiz_id: str
    player_id: str
    current_question_index: int = 0
    score: int = 0
    answers_given: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    version: int = 0  # 0 = not yet persisted
    completed_at: Optional[datetime] = None

    @classmethod
    def start(cls, quiz_id: str, player_id: str, now: Optional[datetime] = None) -> 'ProgressionState':
        return cls(quiz_id=quiz_id, player_id=player_id, started_at=now or utc_now())

    def is_complete(self, quiz: Quiz) -> bool:
        return self.current_question_index >= quiz.total_questions

    def status(self, quiz: Quiz) -> str:
        return 'complete' if self.is_complete(quiz) else 'in_progress'

    def advance(self, selected: Optional[str], correct: bool) -> 'ProgressionState':
        answers = list(self.answers_given)
        if selected is not None:
            answers.append(selected)
        return replace(
            self,
            current_question_index=self.current_question_index + 1,
            score=self.score + (1 if correct else 0),
            answers_given=answers,
        )

    def to_dict(self, quiz: Optional[Quiz] = None) -> Dict[str, Any]:
        data = {
            'quizId': self.quiz_id,
            'playerId': self.player_id,
            'currentQuestionIndex': self.current_question_index,
            'score': self.score,
            'answersGiven': list(self.answers_given),
            'startedAt': format_timestamp(self.started_at),
            'version': self.version,
            'completedAt': format_timestamp(self.completed_at) if self.completed_at else None,
        }
        if quiz is not None:
            data['status'] = self.status(quiz)
            data['totalQuestions'] = quiz.total_questions
        return data


@dataclass(frozen=True)
class LeaderboardEntry:
    display_address: str
    attempts_until_perfect: int
    total_time_seconds: float
    perfect: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.display_address,
            'attemptsUntilPerfect': self.attempts_until_perfect,
            'totalTime': self.total_time_seconds,
            'perfect': self.perfect,
        }
