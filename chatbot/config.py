"""Runtime settings, read from the environment (and `.env` when present)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 500
    max_history: int = 10
    qa_threshold: float = 0.6
    match_threshold: float = 0.2
    context_chars: int = 4000
    max_results: int = 5
    max_recommendations: int = 3
    app_base_url: Optional[str] = None
    metrics_dir: Optional[str] = None

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            temperature=_env_float("HOMEBOT_TEMPERATURE", 0.7),
            max_tokens=_env_int("HOMEBOT_MAX_TOKENS", 500),
            max_history=_env_int("HOMEBOT_MAX_HISTORY", 10),
            qa_threshold=_env_float("HOMEBOT_QA_THRESHOLD", 0.6),
            match_threshold=_env_float("HOMEBOT_MATCH_THRESHOLD", 0.2),
            context_chars=_env_int("HOMEBOT_CONTEXT_CHARS", 4000),
            app_base_url=os.getenv("HOMEBOT_APP_BASE_URL") or None,
            metrics_dir=os.getenv("HOMEBOT_METRICS_DIR") or "metrics",
        )
