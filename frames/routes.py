"""
Farcaster frame transport for the progression engine

Each POST carries the button the player pressed; the frame id (fid) is the
player identity. The progression itself lives in the quiz store, so frames
carry no state of their own.
"""
import logging
from urllib.parse import quote, urlencode

from flask import Blueprint, render_template, request

from config import FRAME_CONFIG, QUIZ_CONFIG, get_share_url_base
from quizzes.errors import RetakeNotAllowedError, ValidationError
from quizzes.routes import get_service, handle_quiz_errors

logger = logging.getLogger(__name__)

frames_bp = Blueprint('frames', __name__, url_prefix='/frames', template_folder='templates')


def frame_post_url(quiz_id: str, reset: bool = False) -> str:
    params = {'quizId': quiz_id}
    if reset:
        params['reset'] = 'true'
    return f"{get_share_url_base()}/frames/quiz?{urlencode(params)}"


def frame_image_url(quiz) -> str:
    if quiz.nft_metadata and quiz.nft_metadata.startswith('ipfs://'):
        return FRAME_CONFIG['IPFS_GATEWAY_URL'] + quiz.nft_metadata[len('ipfs://'):]
    return FRAME_CONFIG['DEFAULT_IMAGE_URL']


def share_url(quiz, score: int) -> str:
    text = (f"I scored {score}/{quiz.total_questions} on {quiz.title}! "
            f"Try it: {get_share_url_base()}/quiz/{quiz.id}")
    return f"{FRAME_CONFIG['SHARE_COMPOSE_URL']}?text={quote(text)}"


def render_frame(quiz, buttons, lines, post_url=None):
    return render_template(
        'frame.html',
        title=quiz.title,
        image_url=frame_image_url(quiz),
        buttons=buttons,
        lines=lines,
        post_url=post_url,
    ), 200, {'Content-Type': 'text/html; charset=utf-8'}


def render_intro(quiz):
    return render_frame(
        quiz,
        buttons=[{'label': 'Start Quiz'}],
        lines=[f"{quiz.total_questions} questions, {QUIZ_CONFIG['SECONDS_PER_QUESTION']} seconds each.",
               "Take the quiz on Warpcast!"],
        post_url=frame_post_url(quiz.id),
    )


def render_question(quiz, state):
    index = state.current_question_index
    question = quiz.questions[index]
    return render_frame(
        quiz,
        buttons=[{'label': option} for option in question.options],
        lines=[f"Question {index + 1}/{quiz.total_questions}: {question.question}"],
        post_url=frame_post_url(quiz.id),
    )


def render_result(quiz, score: int, can_retake: bool, message=None):
    buttons = [
        {'label': 'Back to Home', 'action': 'link', 'target': get_share_url_base()},
        {'label': 'Share Score', 'action': 'link', 'target': share_url(quiz, score)},
    ]
    if can_retake and not quiz.is_perfect(score):
        buttons.append({'label': 'Retry Quiz', 'action': 'post', 'target': frame_post_url(quiz.id, reset=True)})

    lines = [f"Your score: {score}/{quiz.total_questions}"]
    if message:
        lines.append(message)
    return render_frame(quiz, buttons=buttons, lines=lines)


def best_score(engine, quiz, player_id: str) -> int:
    attempts = engine.store.get_attempts(quiz.id, player_id)
    return max((a.score for a in attempts), default=0)


def parse_frame_action():
    body = request.get_json(silent=True)
    untrusted = body.get('untrustedData') if isinstance(body, dict) else None
    if not isinstance(untrusted, dict):
        raise ValidationError("Missing untrustedData")

    fid = untrusted.get('fid')
    if fid is None or fid == '':
        raise ValidationError("Missing fid")

    button_index = untrusted.get('buttonIndex')
    if button_index is not None and (isinstance(button_index, bool) or not isinstance(button_index, int)):
        raise ValidationError("buttonIndex must be an integer")

    return f"fid:{fid}", button_index


def require_quiz_id() -> str:
    quiz_id = request.args.get('quizId')
    if not quiz_id:
        raise ValidationError("Missing quizId")
    return quiz_id


@frames_bp.route('/quiz', methods=['GET'])
@handle_quiz_errors
def quiz_frame_intro():
    quiz = get_service().get_quiz(require_quiz_id())
    return render_intro(quiz)


@frames_bp.route('/quiz', methods=['POST'])
@handle_quiz_errors
def quiz_frame_action():
    quiz_id = require_quiz_id()
    player_id, button_index = parse_frame_action()
    engine = get_service().engine

    logger.info(f"📡 Frame action: quiz={quiz_id} player={player_id} button={button_index}")

    try:
        if request.args.get('reset') == 'true':
            quiz, state = engine.retake(quiz_id, player_id)
            return render_question(quiz, state)

        quiz, state = engine.get_state(quiz_id, player_id)
        if state is None:
            # The Start button opens the first question; it is not an answer
            quiz, state, _ = engine.start(quiz_id, player_id)
            return render_question(quiz, state)
    except RetakeNotAllowedError as e:
        quiz = engine.load_quiz(quiz_id)
        return render_result(quiz, best_score(engine, quiz, player_id), can_retake=False, message=e.message)

    if state.is_complete(quiz):
        return render_result(quiz, state.score, engine.can_retake(quiz, player_id))

    if button_index is None or not 1 <= button_index <= QUIZ_CONFIG['OPTIONS_PER_QUESTION']:
        return render_question(quiz, state)

    result = engine.submit(quiz_id, player_id, button_index - 1)
    if result.finished:
        return render_result(quiz, result.state.score, engine.can_retake(quiz, player_id))
    return render_question(quiz, result.state)
