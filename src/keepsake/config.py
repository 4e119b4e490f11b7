"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .llm import DEFAULT_MODEL


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _path_env(name: str) -> Path | None:
    raw = os.getenv(name)
    return Path(raw).expanduser() if raw else None


@dataclass
class Settings:
    """Runtime settings.

    Attributes:
        groq_api_key: Enables the LLM classifier and phrasing when set.
        model: Groq model name.
        llm_timeout: Seconds before an LLM call is abandoned.
        db_path: SQLite file for the durable fact store.
        db_timeout: Seconds to wait on a locked database.
        sessions_dir: Where sessions are persisted; None keeps them in memory.
        history_size: Recent utterances kept per session.
        log_dir: Directory of the JSONL event log.
        telegram_token: Bot token, required only for the Telegram transport.
    """

    groq_api_key: str | None = None
    model: str = DEFAULT_MODEL
    llm_timeout: float = 10.0
    db_path: Path = field(default_factory=lambda: Path.home() / ".keepsake" / "facts.db")
    db_timeout: float = 5.0
    sessions_dir: Path | None = None
    history_size: int = 5
    log_dir: Path | None = None
    telegram_token: str | None = None

    def __post_init__(self) -> None:
        if self.llm_timeout <= 0:
            raise ValueError("llm_timeout must be positive")
        if self.db_timeout <= 0:
            raise ValueError("db_timeout must be positive")
        if self.history_size < 0:
            raise ValueError("history_size must not be negative")

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment."""
        defaults = cls()
        return cls(
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            model=os.getenv("GROQ_MODEL", DEFAULT_MODEL),
            llm_timeout=_float_env("KEEPSAKE_LLM_TIMEOUT", defaults.llm_timeout),
            db_path=_path_env("KEEPSAKE_DB_PATH") or defaults.db_path,
            db_timeout=_float_env("KEEPSAKE_DB_TIMEOUT", defaults.db_timeout),
            sessions_dir=_path_env("KEEPSAKE_SESSIONS_DIR"),
            history_size=_int_env("KEEPSAKE_HISTORY_SIZE", defaults.history_size),
            log_dir=_path_env("KEEPSAKE_LOG_DIR"),
            telegram_token=os.getenv("TELEGRAM_TOKEN") or None,
        )
