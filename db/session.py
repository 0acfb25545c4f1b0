"""
db/session.py

Engine and session factory for the research cache, built on first use.

Stores open one short-lived session per operation, and concurrent batch
workers each hold one, so the pool is sized to cover BATCH_MAX_WORKERS.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import load_env_files, resolve_database_url


@dataclass(frozen=True)
class EngineSettings:
    echo: bool = False
    pool_recycle_seconds: int = 1800
    pool_size: int = 5
    max_overflow: int = 10


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def load_engine_settings() -> EngineSettings:
    load_env_files()
    batch_workers = max(1, _env_int("BATCH_MAX_WORKERS", 3))
    return EngineSettings(
        echo=_env_flag("SQL_ECHO"),
        pool_recycle_seconds=_env_int("DB_POOL_RECYCLE", 1800),
        pool_size=max(_env_int("DB_POOL_SIZE", 5), batch_workers + 1),
        max_overflow=max(0, _env_int("DB_MAX_OVERFLOW", 10)),
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    database_url = resolve_database_url()
    if not database_url.startswith("postgresql"):
        raise RuntimeError("The research cache requires a PostgreSQL URL.")

    settings = load_engine_settings()
    return create_engine(
        database_url,
        echo=settings.echo,
        pool_pre_ping=True,
        pool_recycle=settings.pool_recycle_seconds,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )


@lru_cache(maxsize=1)
def _session_factory() -> sessionmaker[Session]:
    # Records are converted to plain dataclasses after commit; rows must stay readable.
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


def SessionLocal() -> Session:
    """Open a new session; callers use it as a context manager."""
    return _session_factory()()
