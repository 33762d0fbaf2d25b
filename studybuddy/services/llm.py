from __future__ import annotations

from typing import List, Optional

import openai
import structlog
from openai import OpenAI

from studybuddy.config import LLMSettings
from studybuddy.services.logging import log_performance
from studybuddy.services.normalizer import (
    FlashcardRecord,
    QuizItemRecord,
    normalize_flashcards,
    normalize_quiz,
)

logger = structlog.get_logger()

MAX_SOURCE_CHARS = 8000
MIN_API_KEY_LENGTH = 20

JSON_SYSTEM_PROMPT = (
    "You are a JSON generator. You ONLY return valid JSON arrays, "
    "no other text, no markdown, no code blocks."
)


class UpstreamFailure(RuntimeError):
    """The text-generation service did not return a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GenerationClient:
    def __init__(self, settings: LLMSettings):
        self.settings = settings
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        api_key = self.settings.api_key
        if not api_key:
            raise UpstreamFailure("GROQ_API_KEY not set")
        if len(api_key) < MIN_API_KEY_LENGTH:
            raise UpstreamFailure("GROQ_API_KEY appears to be invalid (too short)")
        if self._client is None:
            self._client = OpenAI(api_key=api_key, base_url=self.settings.base_url)
        return self._client

    def complete(self, prompt: str, *, system: str, temperature: float) -> str:
        """Send one chat request and return the raw text of the first choice."""
        client = self._get_client().with_options(timeout=self.settings.timeout)
        try:
            rsp = client.chat.completions.create(
                model=self.settings.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
            )
        except openai.AuthenticationError as e:
            logger.error("llm_request_failed", reason="auth", error=str(e))
            raise UpstreamFailure("Invalid API key for the generation service", status_code=401) from e
        except openai.RateLimitError as e:
            logger.warning("llm_request_failed", reason="rate_limit", error=str(e))
            raise UpstreamFailure("Rate limit exceeded. Please try again later.", status_code=429) from e
        except openai.APITimeoutError as e:
            logger.error("llm_request_failed", reason="timeout", error=str(e))
            raise UpstreamFailure("Generation service timed out") from e
        except openai.APIConnectionError as e:
            logger.error("llm_request_failed", reason="connection", error=str(e))
            raise UpstreamFailure("Generation service unreachable") from e
        except openai.APIStatusError as e:
            logger.error("llm_request_failed", reason="status", status_code=e.status_code, error=str(e))
            raise UpstreamFailure(f"Generation service error: {e.message}", status_code=e.status_code) from e
        except openai.APIError as e:
            logger.error("llm_request_failed", reason="api", error=str(e))
            raise UpstreamFailure(f"Generation service error: {e}") from e

        if not rsp.choices:
            return ""
        content = rsp.choices[0].message.content or ""
        logger.info("llm_response_received", model=self.settings.model, length=len(content))
        return content


def get_generation_client() -> GenerationClient:
    return GenerationClient(LLMSettings.from_env())


@log_performance("generate_summary")
def generate_summary(client: GenerationClient, text: str, detail: str = "medium") -> str:
    prompt = (
        f"Summarize the following content at a {detail} detail level. "
        "Keep it structured with headings and bullet points where helpful.\n\n"
        f"{text}"
    )
    return client.complete(prompt, system="You are an academic study assistant.", temperature=0.4)


@log_performance("generate_flashcards")
def generate_flashcards(client: GenerationClient, text: str) -> List[FlashcardRecord]:
    prompt = (
        "Create concise flashcards from the content. Return ONLY a valid JSON array "
        "with objects containing fields: question, answer, and tag. Do not include any "
        "markdown formatting, code blocks, or explanatory text. Example format:\n"
        "[\n"
        '  {"question": "What is X?", "answer": "X is...", "tag": "concept"},\n'
        '  {"question": "What is Y?", "answer": "Y is...", "tag": "definition"}\n'
        "]\n\n"
        f"Content:\n{text[:MAX_SOURCE_CHARS]}"
    )
    raw = client.complete(prompt, system=JSON_SYSTEM_PROMPT, temperature=0.3) or "[]"
    return normalize_flashcards(raw)


@log_performance("generate_quiz")
def generate_quiz(client: GenerationClient, text: str, num_questions: int = 10) -> List[QuizItemRecord]:
    prompt = (
        f"Generate {num_questions} multiple choice questions (MCQs) from the following content. "
        "Return ONLY a valid JSON array with objects containing fields: question (string), "
        "options (array of exactly 4 strings), answer (integer index 0-3), explanation (string). "
        "Do not include any markdown formatting, code blocks, or explanatory text. Example format:\n"
        "[\n"
        "  {\n"
        '    "question": "What is X?",\n'
        '    "options": ["Option A", "Option B", "Option C", "Option D"],\n'
        '    "answer": 0,\n'
        '    "explanation": "Explanation for why this is correct"\n'
        "  }\n"
        "]\n\n"
        f"Content:\n{text[:MAX_SOURCE_CHARS]}"
    )
    raw = client.complete(prompt, system=JSON_SYSTEM_PROMPT, temperature=0.4) or "[]"
    return normalize_quiz(raw)


@log_performance("solve_text")
def solve_text(client: GenerationClient, text: str) -> str:
    prompt = (
        "Solve the following problem with step-by-step reasoning, "
        f"then provide a final concise answer.\n\n{text}"
    )
    return client.complete(
        prompt, system="You are a helpful tutor that explains step-by-step.", temperature=0.3
    )
