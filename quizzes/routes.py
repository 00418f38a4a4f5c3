import logging
import traceback
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from config import QUIZ_CONFIG
from .errors import QuizError, ValidationError
from .service import require_string

logger = logging.getLogger(__name__)

quizzes_bp = Blueprint('quizzes', __name__)


def get_service():
    return current_app.extensions['chainiq']


def handle_quiz_errors(f):
    """Turn service errors into {"error": ...} JSON responses"""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except QuizError as e:
            if e.status_code >= 500:
                logger.error(f"❌ {f.__name__}: {e.message} {e.details or ''}")
            else:
                logger.warning(f"⚠️ {f.__name__}: {e.message}")
            return jsonify(e.to_dict()), e.status_code
        except Exception as e:
            logger.error(f"❌ Unhandled error in {f.__name__}: {e}")
            logger.error(f"🔍 Traceback: {traceback.format_exc()}")
            return jsonify({'error': 'Internal server error'}), 500
    return decorated


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body: Expected JSON")
    return data


def play_payload(quiz, state):
    """State plus the question the player should see next (answer hidden)"""
    if state is None:
        return {
            'status': 'not_started',
            'state': None,
            'question': None,
            'totalQuestions': quiz.total_questions,
            'secondsPerQuestion': QUIZ_CONFIG['SECONDS_PER_QUESTION'],
        }

    question = None
    if not state.is_complete(quiz):
        question = quiz.questions[state.current_question_index].to_dict(include_answer=False)

    return {
        'status': state.status(quiz),
        'state': state.to_dict(quiz),
        'question': question,
        'totalQuestions': quiz.total_questions,
        'secondsPerQuestion': QUIZ_CONFIG['SECONDS_PER_QUESTION'],
    }


# ============================
# Quizzes
# ============================

@quizzes_bp.route('/quizzes', methods=['GET'])
@handle_quiz_errors
def get_quizzes():
    """Single quiz by id, or every quiz newest first"""
    service = get_service()
    quiz_id = request.args.get('id')

    if quiz_id:
        quiz = service.get_quiz(quiz_id)
        logger.info(f"✅ Quiz found: {quiz.id} - {quiz.title}")
        return jsonify(quiz.to_dict())

    quizzes = service.list_quizzes()
    logger.info(f"📋 Listed {len(quizzes)} quizzes")
    return jsonify([quiz.to_dict() for quiz in quizzes])


@quizzes_bp.route('/quizzes', methods=['POST'])
@handle_quiz_errors
def save_quiz():
    get_service().save_quiz(get_json_body())
    return jsonify({'success': True})


@quizzes_bp.route('/generateQuestions', methods=['POST'])
@handle_quiz_errors
def generate_questions():
    data = get_json_body()
    questions = get_service().generate_questions(
        data.get('topic'),
        data.get('difficulty'),
        data.get('count'),
        data.get('fileContent'),
    )
    return jsonify([q.to_dict() for q in questions])


@quizzes_bp.route('/createQuiz', methods=['POST'])
@handle_quiz_errors
def create_quiz():
    quiz = get_service().create_quiz(
        request.form.get('topic'),
        request.form.get('difficulty'),
        request.form.get('questionCount'),
        request.files.get('image'),
        created_by=request.form.get('address') or None,
    )
    return jsonify(quiz.to_dict())


# ============================
# Attempts and leaderboard
# ============================

@quizzes_bp.route('/quizAttempts', methods=['GET'])
@handle_quiz_errors
def get_quiz_attempts():
    return jsonify(get_service().get_attempts(request.args.get('quizId'), request.args.get('address')))


@quizzes_bp.route('/quizAttempts', methods=['POST'])
@handle_quiz_errors
def record_quiz_attempt():
    attempt = get_service().record_attempt(get_json_body())
    return jsonify({'success': True, 'attempt': attempt.to_dict()})


@quizzes_bp.route('/leaderboard', methods=['GET'])
@handle_quiz_errors
def get_leaderboard():
    quiz_id = request.args.get('quizId')
    if not quiz_id:
        raise ValidationError("Missing quizId")

    leaderboard = get_service().get_leaderboard(quiz_id, request.args.get('timeMode'))
    return jsonify([entry.to_dict() for entry in leaderboard])


@quizzes_bp.route('/rewards', methods=['GET'])
@handle_quiz_errors
def get_rewards():
    address = request.args.get('address')
    if not address:
        raise ValidationError("Missing address")

    return jsonify({'address': address, 'rewards': get_service().get_rewards(address)})


# ============================
# Play API
# ============================

@quizzes_bp.route('/play/state', methods=['GET'])
@handle_quiz_errors
def play_state():
    quiz_id = request.args.get('quizId')
    player_id = request.args.get('playerId')
    if not quiz_id or not player_id:
        raise ValidationError("quizId and playerId are required")

    quiz, state = get_service().engine.get_state(quiz_id, player_id)
    return jsonify(play_payload(quiz, state))


@quizzes_bp.route('/play/start', methods=['POST'])
@handle_quiz_errors
def play_start():
    data = get_json_body()
    quiz, state, created = get_service().engine.start(
        require_string(data, 'quizId'), require_string(data, 'playerId')
    )
    payload = play_payload(quiz, state)
    payload['created'] = created
    return jsonify(payload)


@quizzes_bp.route('/play/answer', methods=['POST'])
@handle_quiz_errors
def play_answer():
    data = get_json_body()
    if 'answerIndex' not in data:
        raise ValidationError("answerIndex is required (null for a timed out question)")

    service = get_service()
    quiz_id = require_string(data, 'quizId')
    result = service.engine.submit(quiz_id, require_string(data, 'playerId'), data['answerIndex'])

    quiz = service.get_quiz(quiz_id)
    answered = quiz.questions[result.state.current_question_index - 1]

    payload = play_payload(quiz, result.state)
    payload.update({
        'correct': result.correct,
        'timedOut': result.timed_out,
        'correctAnswer': answered.correct_answer,
        'explanation': answered.explanation,
        'attempt': result.attempt.to_dict() if result.attempt else None,
    })
    if result.finished:
        payload['canRetake'] = service.engine.can_retake(quiz, result.state.player_id)
    return jsonify(payload)


@quizzes_bp.route('/play/retake', methods=['POST'])
@handle_quiz_errors
def play_retake():
    data = get_json_body()
    quiz, state = get_service().engine.retake(require_string(data, 'quizId'), require_string(data, 'playerId'))
    return jsonify(play_payload(quiz, state))
