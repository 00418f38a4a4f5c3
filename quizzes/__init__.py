from .errors import (
    QuizError,
    ValidationError,
    NotFoundError,
    ConflictError,
    RetakeNotAllowedError,
    ProgressionCompleteError,
    UpstreamError
)
from .models import Question, Quiz, Attempt, ProgressionState, LeaderboardEntry
from .store import QuizStore, SupabaseQuizStore
from .progression import ProgressionEngine, submit_answer
from .leaderboard import LeaderboardService, compute_leaderboard
from .service import QuizService
from .routes import quizzes_bp

import logging

logger = logging.getLogger(__name__)


def init_quizzes(app, service: QuizService):
    """Attach the quiz service to the app and register the quiz API"""
    try:
        logger.info("🎓 Initializing quiz module...")

        app.extensions['chainiq'] = service
        app.register_blueprint(quizzes_bp)

        logger.info("✅ Quiz module initialized successfully")
        logger.info("📚 Available endpoints:")
        logger.info("   GET/POST /quizzes - Read or save quizzes")
        logger.info("   GET/POST /quizAttempts - Read or record attempts")
        logger.info("   GET  /leaderboard - Ranked players for a quiz")
        logger.info("   POST /generateQuestions - LLM question generation")
        logger.info("   POST /createQuiz - Generate, pin and register a quiz")
        logger.info("   GET  /play/state, POST /play/start|answer|retake - Play API")
        logger.info("   GET  /rewards - Reward-eligible completions")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to initialize quiz module: {e}")
        return False


__all__ = [
    'init_quizzes',
    'QuizService',
    'QuizStore',
    'SupabaseQuizStore',
    'ProgressionEngine',
    'submit_answer',
    'LeaderboardService',
    'compute_leaderboard',
    'Question',
    'Quiz',
    'Attempt',
    'ProgressionState',
    'LeaderboardEntry',
    'QuizError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'RetakeNotAllowedError',
    'ProgressionCompleteError',
    'UpstreamError',
    'quizzes_bp'
]
