"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

SEQUENTIAL_MODE = "sequential"
CONCURRENT_MODE = "concurrent"
_ALLOWED_BATCH_MODES = {SEQUENTIAL_MODE, CONCURRENT_MODE}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class RetrySettings:
    """
    Backoff behavior for rate-limited upstream calls.

    Total attempts per resource = 1 + max_retries.
    """

    base_delay_seconds: float = 2.0
    max_retries: int = 3
    jitter_seconds: float = 1.0


@dataclass(frozen=True)
class BatchSettings:
    """
    Scheduling policy for resolving many keys in one call.
    """

    mode: str = SEQUENTIAL_MODE
    max_workers: int = 3
    item_delay_seconds: float = 1.0


@dataclass(frozen=True)
class ConnectorSettings:
    """
    Credentials and HTTP behavior for one upstream API.
    """

    api_key: str | None
    base_url: str
    timeout_seconds: float = 30.0
    rate_limit_per_second: float = 2.0


@dataclass(frozen=True)
class LLMSettings:
    """
    LLM adapter selection and model settings.
    """

    adapter: str = "openai"
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    max_tokens: int = 2048
    base_url: str | None = None
    max_retries: int = 2


@lru_cache(maxsize=1)
def get_retry_settings() -> RetrySettings:
    """
    Return cached retry settings from environment variables.
    """

    return RetrySettings(
        base_delay_seconds=max(0.0, _get_float_env("FETCH_BACKOFF_BASE_SECONDS", 2.0)),
        max_retries=max(0, _get_int_env("FETCH_MAX_RETRIES", 3)),
        jitter_seconds=max(0.0, _get_float_env("FETCH_BACKOFF_JITTER_SECONDS", 1.0)),
    )


@lru_cache(maxsize=1)
def get_batch_settings() -> BatchSettings:
    """
    Return cached batch scheduling settings from environment variables.
    """

    mode = _get_str_env("BATCH_MODE", SEQUENTIAL_MODE).lower()
    if mode not in _ALLOWED_BATCH_MODES:
        mode = SEQUENTIAL_MODE
    return BatchSettings(
        mode=mode,
        max_workers=max(1, _get_int_env("BATCH_MAX_WORKERS", 3)),
        item_delay_seconds=max(0.0, _get_float_env("BATCH_ITEM_DELAY_SECONDS", 1.0)),
    )


@lru_cache(maxsize=1)
def get_firecrawl_settings() -> ConnectorSettings:
    """
    Return Firecrawl scrape connector settings from environment variables.
    """

    return ConnectorSettings(
        api_key=_get_optional_str_env("FIRECRAWL_API_KEY"),
        base_url=_get_str_env("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev/v1"),
        timeout_seconds=max(1.0, _get_float_env("FIRECRAWL_TIMEOUT_SECONDS", 60.0)),
        rate_limit_per_second=max(0.1, _get_float_env("FIRECRAWL_RATE_LIMIT_PER_SECOND", 1.0)),
    )


@lru_cache(maxsize=1)
def get_serper_settings() -> ConnectorSettings:
    """
    Return Serper search connector settings from environment variables.
    """

    return ConnectorSettings(
        api_key=_get_optional_str_env("SERPER_API_KEY"),
        base_url=_get_str_env("SERPER_BASE_URL", "https://google.serper.dev"),
        timeout_seconds=max(1.0, _get_float_env("SERPER_TIMEOUT_SECONDS", 15.0)),
        rate_limit_per_second=max(0.1, _get_float_env("SERPER_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_exa_settings() -> ConnectorSettings:
    """
    Return Exa search and contents connector settings from environment variables.
    """

    return ConnectorSettings(
        api_key=_get_optional_str_env("EXA_API_KEY"),
        base_url=_get_str_env("EXA_BASE_URL", "https://api.exa.ai"),
        timeout_seconds=max(1.0, _get_float_env("EXA_TIMEOUT_SECONDS", 60.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXA_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """
    Return LLM adapter settings. LLM_API_KEY takes precedence over OPENAI_API_KEY.
    """

    return LLMSettings(
        adapter=_get_str_env("LLM_ADAPTER", "openai").lower(),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        model=_get_str_env("LLM_MODEL", "gpt-4o-mini"),
        max_tokens=max(1, _get_int_env("LLM_MAX_TOKENS", 2048)),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
        max_retries=max(0, _get_int_env("LLM_MAX_RETRIES", 2)),
    )


def get_log_level() -> str:
    return _get_str_env("LOG_LEVEL", "INFO").upper()
