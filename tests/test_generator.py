# =============================================================================
# LLM question generation (HTTP mocked)
# =============================================================================

import json
from unittest.mock import MagicMock

import pytest
import requests

from quizzes.errors import UpstreamError, ValidationError
from quizzes.generator import QuestionGenerator, build_prompt, parse_questions


def llm_questions(count, broken_index=None):
    questions = []
    for i in range(count):
        options = [f"opt{i}-{n}" for n in range(4)]
        questions.append({
            "question": f"What is {i}?",
            "options": options,
            "correctAnswer": "missing" if i == broken_index else options[1],
            "explanation": "Because.",
        })
    return json.dumps({"questions": questions})


def http_response(status, body=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body or {}
    response.text = json.dumps(body or {})
    return response


def gemini_body(content):
    return {"candidates": [{"content": {"parts": [{"text": content}]}}]}


def openai_body(content):
    return {"choices": [{"message": {"content": content}}]}


class TestParseQuestions:

    def test_assigns_ids_and_tags(self):
        questions = parse_questions(llm_questions(3), "Celo", "beginner", 3)

        assert [q.id for q in questions] == ["q1", "q2", "q3"]
        assert questions[0].tags == ["Celo", "beginner"]
        assert questions[0].correct_answer == "opt0-1"

    def test_file_based_tag(self):
        [question] = parse_questions(llm_questions(1), None, "advanced", 1)

        assert question.tags == ["file-based", "advanced"]

    def test_count_mismatch(self):
        with pytest.raises(UpstreamError, match="requested count"):
            parse_questions(llm_questions(2), "Celo", "beginner", 3)

    def test_answer_not_in_options(self):
        with pytest.raises(UpstreamError, match="index 1"):
            parse_questions(llm_questions(2, broken_index=1), "Celo", "beginner", 2)

    def test_invalid_json(self):
        with pytest.raises(UpstreamError, match="Invalid JSON"):
            parse_questions("```json nope", "Celo", "beginner", 1)


class TestBuildPrompt:

    def test_topic_prompt(self):
        prompt = build_prompt("Celo", "beginner", 5)

        assert 'Generate 5 multiple-choice questions about "Celo" at beginner level' in prompt

    def test_file_content_is_truncated(self):
        prompt = build_prompt(None, "beginner", 1, file_content="x" * 20000)

        assert "x" * 10000 in prompt
        assert "x" * 10001 not in prompt


class TestQuestionGenerator:

    def make_generator(self, responses, openai_key=None):
        session = MagicMock()
        session.post.side_effect = responses
        return QuestionGenerator(gemini_api_key="gem-key", openai_api_key=openai_key, session=session), session

    def test_gemini_success(self):
        generator, session = self.make_generator([http_response(200, gemini_body(llm_questions(2)))])

        questions = generator.generate("Celo", "beginner", 2)

        assert len(questions) == 2
        _, kwargs = session.post.call_args
        assert kwargs["params"] == {"key": "gem-key"}
        assert kwargs["json"]["generationConfig"]["responseMimeType"] == "application/json"

    def test_rate_limit_falls_back_to_openai(self):
        generator, session = self.make_generator([
            http_response(429, {"error": "quota"}),
            http_response(200, openai_body(llm_questions(1))),
        ], openai_key="oa-key")

        [question] = generator.generate("Celo", "beginner", 1)

        assert question.id == "q1"
        assert session.post.call_count == 2
        assert "openai.com" in session.post.call_args[0][0]

    def test_rate_limit_without_openai_key(self):
        generator, session = self.make_generator([http_response(429, {"error": "quota"})])

        with pytest.raises(UpstreamError, match="rate limit"):
            generator.generate("Celo", "beginner", 1)

        assert session.post.call_count == 1

    def test_server_error_is_not_retried(self):
        generator, session = self.make_generator([http_response(500, {"error": "boom"})], openai_key="oa-key")

        with pytest.raises(UpstreamError):
            generator.generate("Celo", "beginner", 1)

        assert session.post.call_count == 1

    def test_network_error(self):
        generator, _ = self.make_generator([requests.exceptions.ConnectionError("refused")])

        with pytest.raises(UpstreamError):
            generator.generate("Celo", "beginner", 1)

    def test_empty_candidates(self):
        generator, _ = self.make_generator([http_response(200, {"candidates": []})])

        with pytest.raises(UpstreamError, match="Empty response"):
            generator.generate("Celo", "beginner", 1)

    @pytest.mark.parametrize("topic,difficulty,count", [
        (None, "beginner", 2),
        ("Celo", "expert", 2),
        ("Celo", "beginner", 0),
        ("Celo", "beginner", 21),
        ("Celo", "beginner", "3"),
    ])
    def test_invalid_input(self, topic, difficulty, count):
        generator, session = self.make_generator([])

        with pytest.raises(ValidationError):
            generator.generate(topic, difficulty, count)

        session.post.assert_not_called()

    def test_missing_gemini_key(self):
        generator = QuestionGenerator(gemini_api_key="", session=MagicMock())
        generator.gemini_api_key = None

        with pytest.raises(UpstreamError, match="GEMINI_API_KEY"):
            generator.generate("Celo", "beginner", 1)
