"""
Idempotent fetch-or-create: resolve one external resource through the cache.

Lookup order is cache -> upstream fetch (retried only while throttled) ->
upsert. Upstream and throttling failures are stored and returned as failed
records; they never propagate to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from app.config import RetrySettings
from app.fetching.backoff import BackoffPolicy
from app.fetching.classifier import is_rate_limit_error
from app.fetching.errors import StorageError
from app.fetching.logging_utils import log_event
from app.fetching.storage.base import ResourceStore
from app.fetching.types import (
    CacheStrategy,
    FetchAttempt,
    FetchOutcome,
    ItemStatus,
    ResourceRecord,
)

logger = logging.getLogger(__name__)

FetchFunction = Callable[[str], Any]


class _AttemptsExhausted(Exception):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.cause = cause


def _error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


class FetchOrCreateResolver:
    """
    Resolve keys of one resource type (e.g. ``firecrawl``) against a ResourceStore.
    """

    def __init__(
        self,
        *,
        resource_type: str,
        store: ResourceStore,
        retry_settings: RetrySettings | None = None,
        backoff: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = retry_settings or RetrySettings()
        self.resource_type = resource_type
        self._store = store
        self._max_retries = max(0, settings.max_retries)
        self._backoff = backoff or BackoffPolicy.from_settings(settings)
        self._sleep = sleep

    def resolve(
        self,
        key: str,
        fetch: FetchFunction,
        *,
        cache_strategy: CacheStrategy = CacheStrategy.STALE,
        input_term: str | None = None,
    ) -> FetchOutcome:
        cached = self._lookup(key)
        if cached is not None and cached.success and cache_strategy is CacheStrategy.STALE:
            log_event(
                logger,
                logging.INFO,
                "resource_cache_hit",
                resource_type=self.resource_type,
                key=key,
            )
            return FetchOutcome(key=key, status=ItemStatus.CACHED, record=cached)

        attempts: list[FetchAttempt] = []
        try:
            payload = self._fetch_with_backoff(key, fetch, attempts)
        except _AttemptsExhausted as exhausted:
            record = ResourceRecord(
                resource_type=self.resource_type,
                key=key,
                success=False,
                error=_error_message(exhausted.cause),
                input_term=input_term,
            )
            status = ItemStatus.FAILED
        except Exception as exc:
            record = ResourceRecord(
                resource_type=self.resource_type,
                key=key,
                success=False,
                error=_error_message(exc),
                input_term=input_term,
            )
            status = ItemStatus.FAILED
        else:
            record = ResourceRecord(
                resource_type=self.resource_type,
                key=key,
                success=True,
                payload=payload,
                input_term=input_term,
            )
            status = ItemStatus.SUCCEEDED

        stored = self._store_record(record)
        if status is ItemStatus.FAILED:
            log_event(
                logger,
                logging.WARNING,
                "resource_fetch_failed",
                resource_type=self.resource_type,
                key=key,
                attempts=len(attempts),
                error=stored.error,
                persisted=stored.persisted,
            )
        else:
            log_event(
                logger,
                logging.INFO,
                "resource_fetched",
                resource_type=self.resource_type,
                key=key,
                attempts=len(attempts),
                persisted=stored.persisted,
            )
        return FetchOutcome(key=key, status=status, record=stored, attempts=tuple(attempts))

    def _lookup(self, key: str) -> ResourceRecord | None:
        try:
            return self._store.find_by_key(self.resource_type, key)
        except StorageError as exc:
            logger.warning(
                "Cache lookup failed resource_type=%s key=%s error=%s; treating as miss",
                self.resource_type,
                key,
                exc,
            )
            return None

    def _fetch_with_backoff(
        self,
        key: str,
        fetch: FetchFunction,
        attempts: list[FetchAttempt],
    ) -> Any:
        total_attempts = 1 + self._max_retries
        for attempt in range(total_attempts):
            try:
                payload = fetch(key)
                attempts.append(FetchAttempt(number=attempt + 1))
                return payload
            except Exception as exc:
                if not is_rate_limit_error(exc):
                    attempts.append(FetchAttempt(number=attempt + 1, error=_error_message(exc)))
                    raise

                if attempt >= self._max_retries:
                    attempts.append(FetchAttempt(number=attempt + 1, error=_error_message(exc)))
                    logger.error(
                        "Rate limited after %d attempt(s) resource_type=%s key=%s",
                        total_attempts,
                        self.resource_type,
                        key,
                    )
                    raise _AttemptsExhausted(exc) from exc

                delay = self._backoff.delay_for(attempt)
                attempts.append(
                    FetchAttempt(number=attempt + 1, delay_seconds=delay, error=_error_message(exc))
                )
                log_event(
                    logger,
                    logging.WARNING,
                    "resource_fetch_retry_scheduled",
                    resource_type=self.resource_type,
                    key=key,
                    attempt=attempt + 1,
                    total_attempts=total_attempts,
                    wait_seconds=round(delay, 3),
                )
                self._sleep(delay)

        raise RuntimeError("unreachable: retry loop exited without result")

    def _store_record(self, record: ResourceRecord) -> ResourceRecord:
        try:
            return self._store.upsert(record)
        except StorageError as exc:
            logger.error(
                "Cache write failed resource_type=%s key=%s error=%s; returning transient record",
                self.resource_type,
                record.key,
                exc,
            )
            return record.as_transient()
