"""Runtime settings for the standings engine, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()

# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[1]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be a number") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be an integer") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Engine settings.

    Attributes
    ----------
    db_url : str
        SQLAlchemy URL used by :func:`wagerboard.db.engine.make_engine`.
    soft_deadline : float
        Seconds a single recompute pass may run before it is abandoned with
        :class:`~wagerboard.errors.RecomputeTimeout`.
    max_retries : int
        Automatic retries granted to a trigger whose pass timed out.
    retry_backoff : float
        Base delay in seconds between retries; doubled on every attempt.
    wait_timeout : float
        Upper bound in seconds a trigger waits for the pass that covers it.
    sticky_achievements : bool
        Keep achievements unlocked in an earlier generation even when their
        predicate no longer holds.
    """

    db_url: str = "sqlite:///./dev.db"
    soft_deadline: float = 5.0
    max_retries: int = 3
    retry_backoff: float = 0.05
    wait_timeout: float = 30.0
    sticky_achievements: bool = False

    def __post_init__(self) -> None:
        if self.soft_deadline <= 0:
            raise ValueError("soft_deadline must be positive")
        if self.wait_timeout <= 0:
            raise ValueError("wait_timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff must not be negative")


def load_settings() -> Settings:
    """Build :class:`Settings` from environment variables (and ``.env``)."""
    return Settings(
        db_url=os.getenv("DB_URL", "sqlite:///./dev.db"),
        soft_deadline=_env_float("RECOMPUTE_SOFT_DEADLINE", 5.0),
        max_retries=_env_int("RECOMPUTE_MAX_RETRIES", 3),
        retry_backoff=_env_float("RECOMPUTE_RETRY_BACKOFF", 0.05),
        wait_timeout=_env_float("RECOMPUTE_WAIT_TIMEOUT", 30.0),
        sticky_achievements=_env_bool("STICKY_ACHIEVEMENTS", False),
    )


__all__ = ["ROOT_DIR", "Settings", "load_settings"]
