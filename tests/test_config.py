"""
tests/test_config.py

Environment-driven settings and database URL resolution.
"""

from __future__ import annotations

import pytest

from app import config
from db.config import normalize_postgres_url, resolve_database_url


@pytest.fixture(autouse=True)
def _fresh_settings():
    getters = (
        config.get_retry_settings,
        config.get_batch_settings,
        config.get_firecrawl_settings,
        config.get_serper_settings,
        config.get_exa_settings,
        config.get_llm_settings,
    )
    for getter in getters:
        getter.cache_clear()
    yield
    for getter in getters:
        getter.cache_clear()


def test_defaults_when_environment_is_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FETCH_BACKOFF_BASE_SECONDS", "FETCH_MAX_RETRIES", "FETCH_BACKOFF_JITTER_SECONDS", "BATCH_MODE"):
        monkeypatch.delenv(name, raising=False)

    retry = config.get_retry_settings()
    batch = config.get_batch_settings()

    assert (retry.base_delay_seconds, retry.max_retries, retry.jitter_seconds) == (2.0, 3, 1.0)
    assert batch.mode == config.SEQUENTIAL_MODE


def test_invalid_values_fall_back_or_clamp(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FETCH_MAX_RETRIES", "many")
    monkeypatch.setenv("FETCH_BACKOFF_BASE_SECONDS", "-3")
    monkeypatch.setenv("BATCH_MODE", "parallel")
    monkeypatch.setenv("BATCH_MAX_WORKERS", "0")

    retry = config.get_retry_settings()
    batch = config.get_batch_settings()

    assert retry.max_retries == 3
    assert retry.base_delay_seconds == 0.0
    assert batch.mode == config.SEQUENTIAL_MODE
    assert batch.max_workers == 1


def test_concurrent_batch_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BATCH_MODE", " Concurrent ")
    monkeypatch.setenv("BATCH_MAX_WORKERS", "5")
    monkeypatch.setenv("BATCH_ITEM_DELAY_SECONDS", "0.25")

    batch = config.get_batch_settings()

    assert batch == config.BatchSettings(mode=config.CONCURRENT_MODE, max_workers=5, item_delay_seconds=0.25)


def test_llm_api_key_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
    monkeypatch.setenv("LLM_API_KEY", "   ")
    assert config.get_llm_settings().api_key == "openai-key"

    config.get_llm_settings.cache_clear()
    monkeypatch.setenv("LLM_API_KEY", "llm-key")
    assert config.get_llm_settings().api_key == "llm-key"


def test_blank_connector_key_is_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERPER_API_KEY", "")
    assert config.get_serper_settings().api_key is None


def test_exa_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXA_API_KEY", " exa-key ")
    monkeypatch.delenv("EXA_BASE_URL", raising=False)

    settings = config.get_exa_settings()

    assert settings.api_key == "exa-key"
    assert settings.base_url == "https://api.exa.ai"


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql+psycopg://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
    ],
)
def test_normalize_postgres_url(url: str, expected: str) -> None:
    assert normalize_postgres_url(url) == expected


def test_cloud_url_requires_cloud_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("CLOUD_DATABASE_URL", "postgres://cloud/db")
    monkeypatch.setenv("LOCAL_DATABASE_URL", "postgres://local/db")

    monkeypatch.setenv("ENVIRONMENT", "local")
    assert resolve_database_url() == "postgresql+psycopg://local/db"

    monkeypatch.setenv("ENVIRONMENT", "production")
    assert resolve_database_url() == "postgresql+psycopg://cloud/db"


def test_startup_validation_reports_every_problem(monkeypatch: pytest.MonkeyPatch) -> None:
    from app.main import _validate_env

    for name in (
        "DATABASE_URL",
        "CLOUD_DATABASE_URL",
        "LOCAL_DATABASE_URL",
        "FIRECRAWL_API_KEY",
        "EXA_API_KEY",
        "LLM_API_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SERPER_API_KEY", "serper-key")
    monkeypatch.setenv("LLM_ADAPTER", "openai")

    with pytest.raises(RuntimeError) as excinfo:
        _validate_env()

    message = str(excinfo.value)
    assert "No database URL configured" in message
    assert "FIRECRAWL_API_KEY" in message
    assert "SERPER_API_KEY" not in message
    assert "EXA_API_KEY" in message
    assert "LLM_API_KEY" in message


def test_startup_validation_accepts_mock_adapter_without_llm_key(monkeypatch: pytest.MonkeyPatch) -> None:
    from app.main import _validate_env

    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/research")
    monkeypatch.setenv("FIRECRAWL_API_KEY", "fc-key")
    monkeypatch.setenv("SERPER_API_KEY", "serper-key")
    monkeypatch.setenv("EXA_API_KEY", "exa-key")
    monkeypatch.setenv("LLM_ADAPTER", "mock")
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    _validate_env()
