"""
Quiz Service

Wires the store, the progression engine, the leaderboard and the external
collaborators (question generator, IPFS pinner, rewards contract) together
behind the operations the HTTP and frame layers call.
"""
import logging
import os
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from config import QUIZ_CONFIG
from .errors import UpstreamError, ValidationError
from .leaderboard import LeaderboardService
from .models import Attempt, LeaderboardEntry, Question, Quiz, mask_wallet_address, utc_now
from .progression import ProgressionEngine
from .store import QuizStore

logger = logging.getLogger(__name__)


def require_string(data: Dict[str, Any], key: str, message: Optional[str] = None) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message or f"{key} is required")
    return value.strip()


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_image(image):
    """Reject a missing upload or one over the size limit before any paid call is made"""
    if image is None or not hasattr(image, 'seek'):
        raise ValidationError("Invalid input data: image is required")

    image.seek(0, os.SEEK_END)
    size = image.tell()
    image.seek(0)

    if size == 0:
        raise ValidationError("Invalid input data: image is empty")
    if size > QUIZ_CONFIG['MAX_IMAGE_BYTES']:
        raise ValidationError("Image size must be less than 5MB")


class QuizService:
    def __init__(self, store: QuizStore, contract=None, generator=None,
                 pinner: Optional[Callable] = None, clock: Callable[[], datetime] = utc_now,
                 allow_retake_after_perfect: Optional[bool] = None):
        self.store = store
        self.contract = contract
        self.generator = generator
        self.pinner = pinner
        self.clock = clock
        self.engine = ProgressionEngine(store, clock=clock, allow_retake_after_perfect=allow_retake_after_perfect)
        self.leaderboard_service = LeaderboardService(store)

    # ----- Quizzes -----

    def get_quiz(self, quiz_id: str) -> Quiz:
        return self.engine.load_quiz(quiz_id)

    def list_quizzes(self) -> List[Quiz]:
        return self.store.list_quizzes()

    def save_quiz(self, data: Dict[str, Any]) -> Quiz:
        """Persist a client-built quiz; its id must not exist yet"""
        quiz = Quiz.from_dict(data)
        if quiz.created_at is None:
            quiz = replace(quiz, created_at=self.clock())
        return self.store.put_quiz(quiz)

    def generate_questions(self, topic: Optional[str], difficulty: str, count: int,
                           file_content: Optional[str] = None) -> List[Question]:
        if self.generator is None:
            raise UpstreamError("Question generator not configured")
        return self.generator.generate(topic, difficulty, count, file_content)

    def create_quiz(self, topic: str, difficulty: str, question_count, image, created_by: Optional[str] = None) -> Quiz:
        """
        Generate, pin, register on-chain and persist a new quiz.

        The quiz is only stored after the contract call succeeded, so a
        stored quiz always has a transaction hash.
        """
        if not topic or not topic.strip():
            raise ValidationError("Invalid input data: topic is required")
        topic = topic.strip()
        if difficulty not in QUIZ_CONFIG['DIFFICULTIES']:
            raise ValidationError("Invalid input data: unknown difficulty")
        try:
            question_count = int(question_count)
        except (TypeError, ValueError):
            raise ValidationError("Invalid input data: questionCount must be an integer")
        if not QUIZ_CONFIG['MIN_QUESTION_COUNT'] <= question_count <= QUIZ_CONFIG['MAX_QUESTION_COUNT']:
            raise ValidationError(f"Invalid input data: questionCount must be between "
                                  f"{QUIZ_CONFIG['MIN_QUESTION_COUNT']} and {QUIZ_CONFIG['MAX_QUESTION_COUNT']}")
        validate_image(image)
        if self.pinner is None or self.contract is None:
            raise UpstreamError("Quiz creation not configured", details="IPFS pinning and the rewards contract are required")

        logger.info(f"🎯 Creating quiz: {topic} ({difficulty}, {question_count} questions)")

        questions = self.generate_questions(topic, difficulty, question_count)
        nft_metadata = self.pinner(image)

        now = self.clock()
        quiz_id = f"quiz-{int(now.timestamp() * 1000)}"
        title = f"{topic} - {difficulty.capitalize()}"

        chain_result = self.contract.create_quiz(quiz_id, title, nft_metadata)

        quiz = Quiz(
            id=quiz_id,
            title=title,
            questions=questions,
            description=f"A {difficulty} quiz about {topic}",
            difficulty=difficulty,
            estimated_time=question_count * QUIZ_CONFIG['MINUTES_PER_QUESTION'],
            reward_type=QUIZ_CONFIG['REWARD_TYPE'],
            reward_amount=QUIZ_CONFIG['REWARD_AMOUNT'],
            nft_metadata=nft_metadata,
            created_by=created_by,
            transaction_hash=chain_result.get('tx_hash'),
            created_at=now,
        )
        self.store.put_quiz(quiz)
        logger.info(f"✅ Quiz created: {quiz_id} - {title}")
        return quiz

    # ----- Attempts -----

    def record_attempt(self, data: Dict[str, Any]) -> Attempt:
        """Store an attempt reported by a client that ran the quiz itself"""
        if not isinstance(data, dict):
            raise ValidationError("Invalid quiz attempt data")

        quiz_id = require_string(data, 'quizId', "Invalid quiz attempt data: quizId is required")
        address = require_string(data, 'address', "Invalid quiz attempt data: address is required")
        score = data.get('score')
        time_taken = data.get('timeTaken')

        if not isinstance(score, int) or isinstance(score, bool) or score < 0:
            raise ValidationError("Invalid quiz attempt data: score must be a non-negative integer")
        if not is_number(time_taken) or time_taken < 0:
            raise ValidationError("Invalid quiz attempt data: timeTaken must be a non-negative number")

        quiz = self.get_quiz(quiz_id)
        if score > quiz.total_questions:
            raise ValidationError(f"Invalid quiz attempt data: score exceeds {quiz.total_questions} questions")

        attempt = Attempt(
            quiz_id=quiz_id,
            player_address=address,
            score=score,
            completed_at=self.clock(),
            time_taken_seconds=float(time_taken),
        )
        return self.engine.record_external_attempt(quiz, attempt)

    def get_attempts(self, quiz_id: Optional[str], address: Optional[str]) -> Dict[str, Any]:
        if not address and not quiz_id:
            raise ValidationError("Missing address")

        if address and not quiz_id:
            attempts = self.store.get_player_attempts(address)
            return {'allAttempts': [a.to_dict() for a in attempts]}

        attempts = self.store.get_attempts(quiz_id, address or None)
        return {
            'attempt': attempts[-1].to_dict() if attempts else None,
            'allAttempts': [a.to_dict() for a in attempts],
        }

    def get_leaderboard(self, quiz_id: str, time_mode: Optional[str] = None) -> List[LeaderboardEntry]:
        return self.leaderboard_service.get_leaderboard(quiz_id, time_mode)

    # ----- Rewards -----

    def get_rewards(self, address: str) -> List[Dict[str, Any]]:
        """Perfect completions of a player, each eligible for the quiz NFT"""
        quizzes = {}
        rewards = []
        for attempt in self.store.get_player_attempts(address):
            if attempt.quiz_id not in quizzes:
                quizzes[attempt.quiz_id] = self.store.get_quiz(attempt.quiz_id)
            quiz = quizzes[attempt.quiz_id]
            if quiz is None or not quiz.is_perfect(attempt.score):
                continue
            rewards.append({
                'quizId': quiz.id,
                'title': quiz.title,
                'rewardType': quiz.reward_type,
                'rewardAmount': quiz.reward_amount,
                'nftMetadata': quiz.nft_metadata,
                'score': attempt.score,
                'totalQuestions': quiz.total_questions,
                'completedAt': attempt.to_dict()['completedAt'],
            })

        logger.info(f"🏆 {mask_wallet_address(address)} has {len(rewards)} reward-eligible completions")
        return rewards
