"""
Normalization of free-text model responses into flashcard and quiz records.

Pipeline: extract -> resolve -> sanitize -> (quiz only) reconcile.
None of the stages raise; unusable input degrades to fewer records.
"""
from __future__ import annotations

import json
import re
from typing import Any, List, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict

logger = structlog.get_logger()

FLASHCARD = "flashcard"
QUIZ = "quiz"

_FENCE_RE = re.compile(r"```(?:json)?(.*?)```", re.DOTALL | re.IGNORECASE)

# Wrapper keys checked before falling back to the first array-valued field
_NAMED_ARRAY_KEYS = ("flashcards", "questions")

_INDEX_KEYS = ("answer", "answerIndex", "correct_index")
_TEXT_KEYS = ("correctAnswer", "answerText", "answer")


class FlashcardRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    tag: str = ""

    def to_payload(self) -> dict:
        return {"question": self.question, "answer": self.answer, "tag": self.tag}


class QuizItemRecord(BaseModel):
    """A quiz question whose correct answer is known by index and by text."""

    model_config = ConfigDict(frozen=True)

    question: str
    options: List[str]
    answer_index: Optional[int] = None
    answer_text: Optional[str] = None
    explanation: str = ""

    def to_payload(self) -> dict:
        # Both answer forms are exposed for the two quiz consumers
        return {
            "question": self.question,
            "options": list(self.options),
            "answer": self.answer_index,
            "correctAnswer": self.answer_text,
            "explanation": self.explanation,
        }


Record = Union[FlashcardRecord, QuizItemRecord]


# -------------------- EXTRACT --------------------

def _bracket_span(text: str) -> Optional[str]:
    start = text.find("[")
    end = text.rfind("]")
    if start != -1 and end > start:
        return text[start : end + 1]
    return None


def extract(raw: str) -> str:
    """Isolate the candidate JSON array substring of a model response.

    The first fenced block holding a ``[...]`` span wins. Otherwise the
    greedy first-``[``-to-last-``]`` span of the whole text is used, and
    failing that the trimmed input is returned as-is.
    """
    text = raw or ""
    for match in _FENCE_RE.finditer(text):
        span = _bracket_span(match.group(1))
        if span is not None:
            return span
    span = _bracket_span(text)
    if span is not None:
        return span
    return text.strip()


# -------------------- RESOLVE --------------------

def resolve(candidate: str) -> list:
    try:
        parsed = json.loads(candidate)
    except (TypeError, ValueError, RecursionError) as e:
        logger.warning(
            "generation_response_unparseable",
            error=str(e),
            preview=(candidate or "")[:200],
        )
        return []

    if isinstance(parsed, list):
        return parsed

    if isinstance(parsed, dict):
        for key in _NAMED_ARRAY_KEYS:
            if isinstance(parsed.get(key), list):
                return parsed[key]
        for key, value in parsed.items():
            if isinstance(value, list):
                logger.info("generation_response_unwrapped", key=key, length=len(value))
                return value
        logger.warning("generation_response_without_array", keys=list(parsed.keys()))
        return []

    logger.warning("generation_response_not_json_array", value_type=type(parsed).__name__)
    return []


# -------------------- SANITIZE --------------------

def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _as_option(value: Any) -> str:
    # Options favour permissiveness: anything non-null is stringified
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    try:
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return str(value).strip()
    except (ValueError, RecursionError):
        return ""


def _as_index(value: Any, options: List[str]) -> Optional[int]:
    # A digit string is an index unless it is itself one of the options
    if isinstance(value, str):
        digits = value.strip()
        if digits.isdigit() and digits not in options:
            return int(digits)
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def sanitize_flashcard(item: Any) -> Optional[FlashcardRecord]:
    if not isinstance(item, dict):
        return None
    question = _as_text(item.get("question"))
    answer = _as_text(item.get("answer"))
    if not question or not answer:
        return None
    tag = item.get("tag")
    return FlashcardRecord(
        question=question,
        answer=answer,
        tag=tag.strip() if isinstance(tag, str) else "",
    )


def sanitize_quiz_item(item: Any) -> Optional[QuizItemRecord]:
    """Shape-check a quiz item and pick up whichever answer forms it carries.

    Options keep their positions so an index stays meaningful; the item is
    rejected when fewer than two of them are non-blank.
    """
    if not isinstance(item, dict):
        return None
    question = _as_text(item.get("question"))
    raw_options = item.get("options")
    if not question or not isinstance(raw_options, list):
        return None
    options = [_as_option(o) for o in raw_options]
    if sum(1 for o in options if o) < 2:
        return None

    answer_index = None
    for key in _INDEX_KEYS:
        answer_index = _as_index(item.get(key), options)
        if answer_index is not None:
            break

    answer_text = None
    for key in _TEXT_KEYS:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            answer_text = value.strip()
            break

    explanation = item.get("explanation")
    return QuizItemRecord(
        question=question,
        options=options,
        answer_index=answer_index,
        answer_text=answer_text,
        explanation=explanation.strip() if isinstance(explanation, str) else "",
    )


def sanitize(item: Any, kind: str) -> Optional[Record]:
    if kind == FLASHCARD:
        return sanitize_flashcard(item)
    if kind == QUIZ:
        return sanitize_quiz_item(item)
    raise ValueError(f"Unknown record kind: {kind}")


# -------------------- RECONCILE --------------------

def reconcile(item: QuizItemRecord) -> Optional[QuizItemRecord]:
    """Resolve the correct answer to both index and text form.

    A valid index wins over the text, even when they disagree. Text that
    matches no option exactly falls back to the first option; a record
    with neither form is rejected.
    """
    options = item.options
    index = item.answer_index

    if index is not None and 0 <= index < len(options) and options[index]:
        return item.model_copy(update={"answer_text": options[index]})

    if item.answer_text is not None:
        if item.answer_text in options:
            matched = options.index(item.answer_text)
            return item.model_copy(update={"answer_index": matched, "answer_text": options[matched]})
        fallback = next((i for i, o in enumerate(options) if o), None)
        if fallback is None:
            return None
        logger.warning(
            "quiz_answer_unresolved",
            question=item.question[:120],
            answer_text=item.answer_text,
            fallback=options[fallback],
        )
        return item.model_copy(update={"answer_index": fallback, "answer_text": options[fallback]})

    logger.info("quiz_item_without_answer", question=item.question[:120], answer_index=index)
    return None


# -------------------- BATCH --------------------

def normalize_items(items: list, kind: str) -> List[Record]:
    """Sanitize (and for quizzes reconcile) items, dropping unusable ones."""
    records: List[Record] = []
    for item in items:
        record = sanitize(item, kind)
        if record is not None and kind == QUIZ:
            record = reconcile(record)
        if record is not None:
            records.append(record)
    logger.info(
        "normalized_batch",
        kind=kind,
        received=len(items),
        accepted=len(records),
        dropped=len(items) - len(records),
    )
    return records


def normalize(raw: str, kind: str) -> List[Record]:
    return normalize_items(resolve(extract(raw)), kind)


def normalize_flashcards(raw: str) -> List[FlashcardRecord]:
    return normalize(raw, FLASHCARD)


def normalize_quiz(raw: str) -> List[QuizItemRecord]:
    return normalize(raw, QUIZ)


def normalize_quiz_items(items: list) -> List[QuizItemRecord]:
    """Re-normalize stored quiz payloads (already-parsed dicts)."""
    return normalize_items(items or [], QUIZ)
