"""
LLM Question Generator

Asks Gemini for multiple-choice questions as JSON. When Gemini is rate
limited (HTTP 429) and an OpenAI key is configured, the same prompt is sent
to OpenAI chat completions instead.
"""
import json
import logging
from typing import List, Optional

import requests

from config import LLM_CONFIG, QUIZ_CONFIG
from .errors import UpstreamError, ValidationError
from .models import Question

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"

RESPONSE_SHAPE = ('Return valid JSON with the structure {"questions":[{"question":"text",'
                  '"options":["a","b","c","d"],"correctAnswer":"a","explanation":"text"}]}.')


class RateLimitedError(UpstreamError):
    """Provider answered 429"""


def validate_generation_request(topic: Optional[str], difficulty, count, file_content: Optional[str] = None) -> int:
    if not topic and not file_content:
        raise ValidationError("Invalid input: topic or fileContent is required")
    if difficulty not in QUIZ_CONFIG['DIFFICULTIES']:
        raise ValidationError(f"Invalid input: difficulty must be one of {', '.join(QUIZ_CONFIG['DIFFICULTIES'])}")
    if isinstance(count, bool) or not isinstance(count, int) \
            or not QUIZ_CONFIG['MIN_QUESTION_COUNT'] <= count <= QUIZ_CONFIG['MAX_QUESTION_COUNT']:
        raise ValidationError(f"Invalid input: count must be an integer between "
                              f"{QUIZ_CONFIG['MIN_QUESTION_COUNT']} and {QUIZ_CONFIG['MAX_QUESTION_COUNT']}")
    return count


def build_prompt(topic: Optional[str], difficulty: str, count: int, file_content: Optional[str] = None) -> str:
    if file_content:
        content = file_content[:QUIZ_CONFIG['MAX_FILE_CONTENT_CHARS']]
        subject = f'based on the following content at {difficulty} level: "{content}"'
    else:
        subject = f'about "{topic}" at {difficulty} level'

    return (f"{RESPONSE_SHAPE} Generate {count} multiple-choice questions {subject}. "
            "Each question must have exactly 4 options, a correct answer (option text), and an explanation. "
            "Ensure the response is a single JSON object, not wrapped in markdown.")


def parse_questions(content: str, topic: Optional[str], difficulty: str, count: int) -> List[Question]:
    """Turn the model's JSON text into validated Questions with ids q1..qN"""
    try:
        data = json.loads(content)
    except (TypeError, ValueError):
        logger.error(f"❌ Invalid JSON from LLM: {str(content)[:200]}")
        raise UpstreamError("Invalid JSON response from question generator")

    raw_questions = data.get('questions') if isinstance(data, dict) else None
    if not isinstance(raw_questions, list) or not raw_questions:
        raise UpstreamError("No questions returned from question generator")

    if len(raw_questions) != count:
        raise UpstreamError(f"Generated questions do not match requested count "
                            f"(expected {count}, got {len(raw_questions)})")

    tags = [topic or 'file-based', difficulty]
    questions = []
    for index, raw in enumerate(raw_questions):
        if not isinstance(raw, dict):
            raise UpstreamError(f"Invalid question format at index {index}")
        candidate = dict(raw, id=f"q{index + 1}", tags=tags)
        try:
            questions.append(Question.from_dict(candidate, index))
        except ValidationError as e:
            raise UpstreamError(e.message)
    return questions


class QuestionGenerator:
    def __init__(self, gemini_api_key=None, openai_api_key=None, session=None):
        self.gemini_api_key = gemini_api_key or LLM_CONFIG['GEMINI_API_KEY']
        self.openai_api_key = openai_api_key or LLM_CONFIG['OPENAI_API_KEY']
        self.session = session or requests.Session()

    def _post(self, url: str, provider: str, **kwargs) -> dict:
        try:
            response = self.session.post(url, timeout=LLM_CONFIG['REQUEST_TIMEOUT'], **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ {provider} request failed: {e}")
            raise UpstreamError(f"Failed to generate questions from {provider}", details=str(e))

        if response.status_code == 429:
            raise RateLimitedError(f"{provider} rate limit exceeded")
        if response.status_code >= 400:
            logger.error(f"❌ {provider} API error: {response.status_code} - {response.text[:200]}")
            raise UpstreamError(f"Failed to generate questions from {provider}",
                                details=f"HTTP {response.status_code}")
        return response.json()

    def _call_gemini(self, prompt: str) -> str:
        result = self._post(
            GEMINI_URL.format(model=LLM_CONFIG['GEMINI_MODEL']),
            'Gemini',
            params={'key': self.gemini_api_key},
            json={
                'contents': [{'parts': [{'text': prompt}]}],
                'generationConfig': {
                    'temperature': LLM_CONFIG['TEMPERATURE'],
                    'maxOutputTokens': LLM_CONFIG['MAX_OUTPUT_TOKENS'],
                    'responseMimeType': 'application/json',
                },
            },
        )
        try:
            return result['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            raise UpstreamError("Empty response from Gemini API")

    def _call_openai(self, prompt: str) -> str:
        result = self._post(
            OPENAI_URL,
            'OpenAI',
            headers={'Authorization': f'Bearer {self.openai_api_key}'},
            json={
                'model': LLM_CONFIG['OPENAI_MODEL'],
                'messages': [
                    {'role': 'system', 'content': 'You are a strict JSON generator for quiz questions.'},
                    {'role': 'user', 'content': prompt},
                ],
                'temperature': LLM_CONFIG['TEMPERATURE'],
                'response_format': {'type': 'json_object'},
            },
        )
        try:
            return result['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError):
            raise UpstreamError("Empty response from OpenAI API")

    def generate(self, topic: Optional[str], difficulty: str, count: int,
                 file_content: Optional[str] = None) -> List[Question]:
        """
        Generate `count` validated questions about a topic or a document.

        Raises ValidationError for bad input and UpstreamError when no
        provider produced a usable question set.
        """
        count = validate_generation_request(topic, difficulty, count, file_content)

        if not self.gemini_api_key:
            logger.error("❌ GEMINI_API_KEY not configured")
            raise UpstreamError("Server configuration error: Missing GEMINI_API_KEY")

        prompt = build_prompt(topic, difficulty, count, file_content)
        logger.info(f"💡 Generating {count} {difficulty} questions about {topic or 'uploaded content'}")

        try:
            content = self._call_gemini(prompt)
        except RateLimitedError:
            if not self.openai_api_key:
                raise
            logger.warning("⚠️ Gemini API rate limit exceeded, trying OpenAI...")
            content = self._call_openai(prompt)

        questions = parse_questions(content, topic, difficulty, count)
        logger.info(f"✅ Generated {len(questions)} questions")
        return questions
