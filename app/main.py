from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import (
    get_exa_settings,
    get_firecrawl_settings,
    get_llm_settings,
    get_log_level,
    get_serper_settings,
)
from app.fetching.logging_utils import configure_logging, log_event

logger = logging.getLogger(__name__)

_SUPPORTED_LLM_ADAPTERS = ("mock", "openai")


def _validate_env() -> None:
    """
    Fail fast on missing credentials before any request is accepted.

    Every problem is collected so one restart fixes them all. Empty strings
    count as missing. The LLM key is only required for the openai adapter.
    """

    from db.config import resolve_database_url

    problems: list[str] = []

    try:
        resolve_database_url()
    except RuntimeError as exc:
        problems.append(str(exc))

    connectors = (
        ("FIRECRAWL_API_KEY", get_firecrawl_settings()),
        ("SERPER_API_KEY", get_serper_settings()),
        ("EXA_API_KEY", get_exa_settings()),
    )
    for name, settings in connectors:
        if not settings.api_key:
            problems.append(f"{name} is not set.")

    llm = get_llm_settings()
    if llm.adapter not in _SUPPORTED_LLM_ADAPTERS:
        problems.append(f"LLM_ADAPTER='{llm.adapter}' is not one of {list(_SUPPORTED_LLM_ADAPTERS)}.")
    elif llm.adapter == "openai" and not llm.api_key:
        problems.append("LLM_API_KEY (or OPENAI_API_KEY) is not set.")

    if problems:
        raise RuntimeError("Startup validation failed:\n" + "\n".join(f"  - {item}" for item in problems))


def _verify_database() -> None:
    """
    Check connectivity and that every mapped table exists. Never migrates.
    """

    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401 registers the mapped tables on Base.metadata
    from db.base import Base
    from db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
            present = set(sa_inspect(connection).get_table_names())
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        log_event(logger, logging.CRITICAL, "schema_tables_missing", tables=missing)
        raise RuntimeError(f"Missing tables {', '.join(missing)}. Run 'alembic upgrade head' and restart.")
    log_event(logger, logging.INFO, "database_ready", tables=len(present))


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _verify_database()
    yield


def create_app(*, validate_env: bool = True) -> FastAPI:
    """
    Build the API. Serve with ``uvicorn app.main:create_app --factory``.
    """

    if validate_env:
        _validate_env()
    configure_logging(get_log_level())

    application = FastAPI(
        title="Glossary Research API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import workflows_router

    application.include_router(workflows_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application
