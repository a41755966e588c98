"""Runtime settings for the SkillUp core, read from ``SKILLUP_*`` env vars."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


@dataclass(frozen=True)
class Settings:
    session_ttl_seconds: int = 24 * 60 * 60
    max_history: int = 50
    prompt_history: int = 10
    channel_buffer_size: int = 500
    channel_grace_seconds: float = 300.0
    job_retention_seconds: float = 900.0
    job_timeout_seconds: Optional[float] = None
    # 0 disables the periodic sweep; explicit sweeps still work
    cleanup_interval_seconds: float = 60.0
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1000
    breaker_threshold: int = 2
    breaker_cooldown_seconds: float = 120.0
    redis_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        interval_raw = os.getenv("SKILLUP_CLEANUP_INTERVAL_SECONDS")
        if interval_raw is not None and interval_raw.strip() == "0":
            cleanup_interval = 0.0
        else:
            cleanup_interval = _env_float("SKILLUP_CLEANUP_INTERVAL_SECONDS", 60.0)
        return cls(
            session_ttl_seconds=_env_int("SKILLUP_SESSION_TTL_SECONDS", 24 * 60 * 60),
            max_history=_env_int("SKILLUP_MAX_HISTORY", 50),
            prompt_history=_env_int("SKILLUP_PROMPT_HISTORY", 10),
            channel_buffer_size=_env_int("SKILLUP_CHANNEL_BUFFER_SIZE", 500),
            channel_grace_seconds=_env_float("SKILLUP_CHANNEL_GRACE_SECONDS", 300.0),
            job_retention_seconds=_env_float("SKILLUP_JOB_RETENTION_SECONDS", 900.0),
            job_timeout_seconds=_env_optional_float("SKILLUP_JOB_TIMEOUT_SECONDS"),
            cleanup_interval_seconds=cleanup_interval,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            llm_temperature=_env_float("SKILLUP_LLM_TEMPERATURE", 0.7),
            llm_max_tokens=_env_int("SKILLUP_LLM_MAX_TOKENS", 1000),
            breaker_threshold=_env_int("SKILLUP_LLM_BREAKER_THRESHOLD", 2),
            breaker_cooldown_seconds=_env_float("SKILLUP_LLM_BREAKER_COOLDOWN", 120.0),
            redis_url=os.getenv("REDIS_URL") or None,
        )
