from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "llama-3.1-8b-instant"
DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"

# Prefer DATABASE_URL (e.g., Postgres in production). Fallback to local SQLite.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./studybuddy.db")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() not in ("0", "false", "no")
AI_RATE_LIMIT = os.getenv("AI_RATE_LIMIT", "5/minute")


@dataclass(frozen=True)
class LLMSettings:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "LLMSettings":
        api_key = (os.getenv("GROQ_API_KEY") or "").strip() or None
        return cls(
            api_key=api_key,
            model=os.getenv("GROQ_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("GROQ_BASE_URL", DEFAULT_BASE_URL),
            timeout=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
        )
