"""Environment-driven settings for AnswerEval."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

DEFAULT_JUDGE_MODEL = "openai:gpt-4o-mini"
DEFAULT_EMBEDDING_MODEL = "openai:text-embedding-3-small"
DEFAULT_REALTIME_MODEL = "gpt-realtime"
DEFAULT_REDIS_URL = "redis://localhost:6379"
DEFAULT_DB_PATH = "answereval.db"
DEFAULT_CONCURRENCY = 3

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_AI_API_KEY",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Build with :meth:`from_env`; override with :meth:`with_overrides`."""

    judge_model: str = DEFAULT_JUDGE_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    realtime_model: str = DEFAULT_REALTIME_MODEL
    redis_url: str = DEFAULT_REDIS_URL
    db_path: str = DEFAULT_DB_PATH
    concurrency: int = DEFAULT_CONCURRENCY
    files_dir: str = "public"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        concurrency = env.get("ANSWEREVAL_CONCURRENCY", "")
        return cls(
            judge_model=env.get("LLM_JUDGE_MODEL") or DEFAULT_JUDGE_MODEL,
            embedding_model=env.get("EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL,
            realtime_model=env.get("REALTIME_MODEL") or DEFAULT_REALTIME_MODEL,
            redis_url=env.get("REDIS_URL") or DEFAULT_REDIS_URL,
            db_path=env.get("ANSWEREVAL_DB") or DEFAULT_DB_PATH,
            concurrency=int(concurrency) if concurrency.strip() else DEFAULT_CONCURRENCY,
            files_dir=env.get("ANSWEREVAL_FILES_DIR") or "public",
        )

    def with_overrides(self, **overrides: object) -> "Settings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def get_settings() -> Settings:
    return Settings.from_env()
