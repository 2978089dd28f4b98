from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_LLM_MODEL = "llama-3.1-8b-instant"
DEFAULT_LLM_BASE_URL = "https://api.groq.com/openai/v1"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class Settings:
    llm_api_key: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_provider: str = "groq"
    request_timeout: float = 30.0
    max_retries: int = 1
    retry_base_delay: float = 0.5
    retry_max_delay: float = 1.5
    cache_enabled: bool = True
    cache_ttl_seconds: int = 86400
    redis_url: str | None = None
    model_version: str = f"{DEFAULT_LLM_MODEL}-v1"
    rag_version: str = "1.0.0"
    sweep_interval_seconds: float = 300.0
    admin_api_key: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            llm_api_key=os.getenv("GROQ_API_KEY") or os.getenv("LLM_API_KEY"),
            llm_model=os.getenv("GROQ_MODEL", DEFAULT_LLM_MODEL),
            llm_base_url=os.getenv("GROQ_BASE_URL", DEFAULT_LLM_BASE_URL).rstrip("/"),
            llm_provider=os.getenv("LLM_PROVIDER", "groq"),
            request_timeout=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "1")),
            cache_enabled=_env_bool("CACHE_ENABLED", True),
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "86400")),
            redis_url=os.getenv("REDIS_URL") or None,
            model_version=os.getenv("MODEL_VERSION", f"{DEFAULT_LLM_MODEL}-v1"),
            rag_version=os.getenv("RAG_VERSION", "1.0.0"),
            sweep_interval_seconds=float(os.getenv("CACHE_SWEEP_SECONDS", "300")),
            admin_api_key=os.getenv("ADMIN_API_KEY") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
