"""
Unit tests for the generation client and generation calls
"""
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import openai
import pytest

from studybuddy.config import LLMSettings
from studybuddy.services.llm import (
    GenerationClient,
    UpstreamFailure,
    generate_flashcards,
    generate_quiz,
    generate_summary,
    solve_text,
)
from studybuddy.services.normalizer import FlashcardRecord

VALID_KEY = "gsk_" + "x" * 40
_REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _status_error(cls, status):
    return cls("upstream said no", response=httpx.Response(status, request=_REQUEST), body=None)


@pytest.fixture
def mock_openai():
    with patch("studybuddy.services.llm.OpenAI") as mock_cls:
        yield mock_cls


def _create(mock_openai):
    return mock_openai.return_value.with_options.return_value.chat.completions.create


class TestGenerationClient:
    def test_missing_key(self):
        """Test a missing API key is an upstream failure"""
        client = GenerationClient(LLMSettings(api_key=None))
        with pytest.raises(UpstreamFailure, match="not set"):
            client.complete("hi", system="s", temperature=0.1)

    def test_short_key(self):
        """Test an implausibly short API key is rejected"""
        client = GenerationClient(LLMSettings(api_key="short"))
        with pytest.raises(UpstreamFailure, match="too short"):
            client.complete("hi", system="s", temperature=0.1)

    def test_settings_passed_to_sdk(self, mock_openai):
        """Test key, base URL, model and timeout come from settings"""
        settings = LLMSettings(api_key=VALID_KEY, model="m-1", base_url="https://llm.local/v1", timeout=12.0)
        _create(mock_openai).return_value = _completion("ok")

        assert GenerationClient(settings).complete("hi", system="sys", temperature=0.2) == "ok"

        mock_openai.assert_called_once_with(api_key=VALID_KEY, base_url="https://llm.local/v1")
        mock_openai.return_value.with_options.assert_called_once_with(timeout=12.0)
        kwargs = _create(mock_openai).call_args.kwargs
        assert kwargs["model"] == "m-1"
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["temperature"] == 0.2

    def test_empty_content(self, mock_openai):
        """Test a response without content becomes an empty string"""
        _create(mock_openai).return_value = _completion(None)
        assert GenerationClient(LLMSettings(api_key=VALID_KEY)).complete("hi", system="s", temperature=0) == ""

    @pytest.mark.parametrize(
        "error, status",
        [
            (_status_error(openai.AuthenticationError, 401), 401),
            (_status_error(openai.RateLimitError, 429), 429),
            (_status_error(openai.InternalServerError, 500), 500),
            (openai.APITimeoutError(request=_REQUEST), None),
            (openai.APIConnectionError(request=_REQUEST), None),
        ],
    )
    def test_sdk_errors_become_upstream_failures(self, mock_openai, error, status):
        """Test SDK errors surface as UpstreamFailure"""
        _create(mock_openai).side_effect = error
        with pytest.raises(UpstreamFailure) as exc_info:
            GenerationClient(LLMSettings(api_key=VALID_KEY)).complete("hi", system="s", temperature=0)
        assert exc_info.value.status_code == status

    def test_settings_from_env(self, monkeypatch):
        """Test settings are read from the environment"""
        monkeypatch.setenv("GROQ_API_KEY", f"  {VALID_KEY}  ")
        monkeypatch.setenv("GROQ_MODEL", "llama-3.3-70b-versatile")
        monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "5")
        settings = LLMSettings.from_env()
        assert settings.api_key == VALID_KEY
        assert settings.model == "llama-3.3-70b-versatile"
        assert settings.timeout == 5.0


class TestGenerationCalls:
    def _client(self, mock_openai, content):
        _create(mock_openai).return_value = _completion(content)
        return GenerationClient(LLMSettings(api_key=VALID_KEY))

    def test_flashcards_normalized(self, mock_openai):
        """Test flashcard generation returns sanitized records"""
        client = self._client(
            mock_openai,
            '```json\n[{"question": "What is X?", "answer": "X is Y", "tag": "concept"},'
            ' {"question": "", "answer": "dropped"}]\n```',
        )
        assert generate_flashcards(client, "notes") == [
            FlashcardRecord(question="What is X?", answer="X is Y", tag="concept")
        ]

    def test_source_text_truncated(self, mock_openai):
        """Test long source text is truncated in the prompt"""
        client = self._client(mock_openai, "[]")
        generate_flashcards(client, "a" * 9000 + "TAIL")
        prompt = _create(mock_openai).call_args.kwargs["messages"][1]["content"]
        assert "TAIL" not in prompt
        assert "a" * 8000 in prompt

    def test_quiz_reconciled(self, mock_openai):
        """Test quiz generation reconciles answers and reports the count asked for"""
        client = self._client(
            mock_openai,
            '{"questions": [{"question": "Capital of France?", "options": ["Rome", "Paris"], '
            '"correctAnswer": "Paris"}]}',
        )
        items = generate_quiz(client, "geography notes", num_questions=3)
        assert len(items) == 1
        assert (items[0].answer_index, items[0].answer_text) == (1, "Paris")
        prompt = _create(mock_openai).call_args.kwargs["messages"][1]["content"]
        assert prompt.startswith("Generate 3 multiple choice questions")

    def test_empty_result_is_not_an_error(self, mock_openai):
        """Test unusable output is an empty list, not an exception"""
        client = self._client(mock_openai, "Sorry, I can't do that.")
        assert generate_quiz(client, "notes") == []

    def test_upstream_failure_propagates(self, mock_openai):
        """Test upstream failures are not swallowed by the normalizer"""
        _create(mock_openai).side_effect = openai.APIConnectionError(request=_REQUEST)
        client = GenerationClient(LLMSettings(api_key=VALID_KEY))
        with pytest.raises(UpstreamFailure):
            generate_flashcards(client, "notes")

    def test_summary_and_solve_return_raw_text(self, mock_openai):
        """Test free-text calls return the model text untouched"""
        client = self._client(mock_openai, "## Summary\n- point")
        assert generate_summary(client, "notes", detail="short") == "## Summary\n- point"
        assert "short detail level" in _create(mock_openai).call_args.kwargs["messages"][1]["content"]
        assert solve_text(client, "2+2") == "## Summary\n- point"
