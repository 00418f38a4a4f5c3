# =============================================================================
# Shared fixtures: in-memory store, fake collaborators, Flask app and client
# =============================================================================

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from quizzes.errors import ConflictError
from quizzes.models import Question, Quiz
from quizzes.store import QuizStore


PLAYER = "0x1234567890abcdef1234567890abcdef12345678"
OTHER_PLAYER = "0xabcdefabcdefabcdefabcdefabcdefabcdef9999"


class InMemoryQuizStore(QuizStore):
    """QuizStore double with the same conflict semantics as the Supabase adapter"""

    def __init__(self):
        self.quizzes = {}
        self.attempts = []
        self.progress = {}

    def get_quiz(self, quiz_id):
        return self.quizzes.get(quiz_id)

    def list_quizzes(self):
        return sorted(self.quizzes.values(), key=lambda q: q.created_at, reverse=True)

    def put_quiz(self, quiz):
        if quiz.id in self.quizzes:
            raise ConflictError("Duplicate record in insert quiz")
        self.quizzes[quiz.id] = quiz
        return quiz

    def get_attempts(self, quiz_id, player_address=None):
        matching = [a for a in self.attempts
                    if a.quiz_id == quiz_id and (player_address is None or a.player_address == player_address)]
        return sorted(matching, key=lambda a: a.completed_at)

    def get_player_attempts(self, player_address):
        return sorted((a for a in self.attempts if a.player_address == player_address),
                      key=lambda a: a.completed_at)

    def put_attempt(self, attempt):
        if any(a.key == attempt.key for a in self.attempts):
            raise ConflictError("Duplicate record in insert attempt")
        self.attempts.append(attempt)
        return attempt

    def get_progress(self, quiz_id, player_id):
        return self.progress.get((player_id, quiz_id))

    def save_progress(self, state, expected_version):
        key = (state.player_id, state.quiz_id)
        current = self.progress.get(key)
        current_version = current.version if current else 0
        if current_version != expected_version:
            raise ConflictError("Progress was updated by another request. Please reload the quiz.")
        saved = replace(state, answers_given=list(state.answers_given), version=expected_version + 1)
        self.progress[key] = saved
        return saved


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def build_questions(count):
    questions = []
    for i in range(count):
        options = [f"Q{i + 1} option {letter}" for letter in "ABCD"]
        questions.append(Question(
            id=f"q{i + 1}",
            question=f"Question number {i + 1}?",
            options=options,
            correct_answer=options[i % 4],
            explanation=f"Because option {'ABCD'[i % 4]}",
            tags=["testing", "beginner"],
        ))
    return questions


def build_quiz(quiz_id="quiz-1", count=3, created_at=None):
    return Quiz(
        id=quiz_id,
        title="Testing - Beginner",
        questions=build_questions(count),
        description="A beginner quiz about testing",
        difficulty="beginner",
        estimated_time=count * 2,
        nft_metadata="ipfs://QmTestHash",
        created_at=created_at or datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def correct_index(quiz, question_index):
    question = quiz.questions[question_index]
    return question.options.index(question.correct_answer)


def wrong_index(quiz, question_index):
    return (correct_index(quiz, question_index) + 1) % 4


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryQuizStore()


@pytest.fixture
def quiz(store):
    quiz = build_quiz()
    store.put_quiz(quiz)
    return quiz


# =============================================================================
# Collaborator fakes
# =============================================================================


@pytest.fixture
def contract():
    fake = MagicMock()
    fake.create_quiz.return_value = {
        'tx_hash': '0xfeedbeef',
        'gas_used': 21000,
        'block_number': 1,
        'explorer_url': 'https://alfajores.celoscan.io/tx/0xfeedbeef',
    }
    return fake


@pytest.fixture
def generator():
    fake = MagicMock()
    fake.generate.side_effect = lambda topic, difficulty, count, file_content=None: build_questions(count)
    return fake


@pytest.fixture
def pinner():
    return MagicMock(return_value="ipfs://QmPinnedImage")


# =============================================================================
# Flask
# =============================================================================


@pytest.fixture
def app(store, contract, generator, pinner, clock):
    from main import create_app

    app = create_app(store=store, contract=contract, generator=generator, pinner=pinner,
                     clock=clock, config={'TESTING': True})
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions['chainiq']
