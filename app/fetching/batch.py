"""
Batch coordinator for resolving many keys through one FetchOrCreateResolver.
"""

from __future__ import annotations

import logging
import queue
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

from app.config import CONCURRENT_MODE, SEQUENTIAL_MODE, BatchSettings
from app.fetching.logging_utils import log_event
from app.fetching.resolver import FetchFunction, FetchOrCreateResolver
from app.fetching.types import (
    BatchItem,
    BatchResult,
    BatchSummary,
    CacheStrategy,
    FailedKey,
    FetchOutcome,
    ItemStatus,
    ResourceRecord,
)

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """
    Resolves every key in a batch and never aborts on a single failure.

    In sequential mode items run one at a time with ``item_delay_seconds``
    between them. In concurrent mode ``max_workers`` threads drain a shared
    queue, each pausing ``item_delay_seconds`` between its own items.
    """

    def __init__(
        self,
        resolver: FetchOrCreateResolver,
        settings: BatchSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._resolver = resolver
        self._settings = settings or BatchSettings()
        if self._settings.mode not in {SEQUENTIAL_MODE, CONCURRENT_MODE}:
            raise ValueError(f"Unsupported batch mode '{self._settings.mode}'.")
        self._sleep = sleep

    def resolve_many(
        self,
        keys: Sequence[str],
        fetch: FetchFunction,
        *,
        cache_strategy: CacheStrategy = CacheStrategy.STALE,
        input_term: str | None = None,
    ) -> BatchResult:
        items = [BatchItem(key=key) for key in keys]
        if not items:
            return BatchResult(items=[], summary=BatchSummary(total=0, succeeded=0, cached=0, failed=0))

        log_event(
            logger,
            logging.INFO,
            "batch_started",
            resource_type=self._resolver.resource_type,
            mode=self._settings.mode,
            total=len(items),
        )

        if self._settings.mode == CONCURRENT_MODE and self._settings.max_workers > 1 and len(items) > 1:
            self._run_concurrent(items, fetch, cache_strategy, input_term)
        else:
            self._run_sequential(items, fetch, cache_strategy, input_term)

        summary = summarize(items)
        log_event(
            logger,
            logging.INFO,
            "batch_completed",
            resource_type=self._resolver.resource_type,
            **summary.as_dict(),
        )
        return BatchResult(items=items, summary=summary)

    def _run_sequential(
        self,
        items: list[BatchItem],
        fetch: FetchFunction,
        cache_strategy: CacheStrategy,
        input_term: str | None,
    ) -> None:
        last_index = len(items) - 1
        for index, item in enumerate(items):
            self._process(item, fetch, cache_strategy, input_term)
            if index < last_index:
                self._pause()

    def _run_concurrent(
        self,
        items: list[BatchItem],
        fetch: FetchFunction,
        cache_strategy: CacheStrategy,
        input_term: str | None,
    ) -> None:
        pending: queue.Queue[BatchItem] = queue.Queue()
        for item in items:
            pending.put(item)

        worker_count = min(self._settings.max_workers, len(items))

        def worker() -> None:
            processed_any = False
            while True:
                try:
                    item = pending.get_nowait()
                except queue.Empty:
                    return
                if processed_any:
                    self._pause()
                self._process(item, fetch, cache_strategy, input_term)
                processed_any = True
                pending.task_done()

        with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="batch-worker") as executor:
            futures = [executor.submit(worker) for _ in range(worker_count)]
            for future in futures:
                future.result()

    def _process(
        self,
        item: BatchItem,
        fetch: FetchFunction,
        cache_strategy: CacheStrategy,
        input_term: str | None,
    ) -> None:
        item.transition(ItemStatus.IN_FLIGHT)
        self._resolve_item(item, fetch, cache_strategy, input_term)

    def _resolve_item(
        self,
        item: BatchItem,
        fetch: FetchFunction,
        cache_strategy: CacheStrategy,
        input_term: str | None,
    ) -> None:
        try:
            outcome = self._resolver.resolve(
                item.key,
                fetch,
                cache_strategy=cache_strategy,
                input_term=input_term,
            )
        except Exception as exc:
            # Resolver bugs or non-StorageError store failures still yield a result.
            message = str(exc) or exc.__class__.__name__
            logger.exception("Batch item failed unexpectedly key=%s", item.key)
            outcome = FetchOutcome(
                key=item.key,
                status=ItemStatus.FAILED,
                record=ResourceRecord(
                    resource_type=self._resolver.resource_type,
                    key=item.key,
                    success=False,
                    error=message,
                    input_term=input_term,
                    persisted=False,
                ),
            )
        item.complete(outcome)

    def _pause(self) -> None:
        if self._settings.item_delay_seconds > 0:
            self._sleep(self._settings.item_delay_seconds)


def summarize(items: Sequence[BatchItem]) -> BatchSummary:
    """
    Build aggregate counts from terminal batch items.
    """

    cached = sum(1 for item in items if item.status is ItemStatus.CACHED)
    succeeded = sum(1 for item in items if item.status in {ItemStatus.CACHED, ItemStatus.SUCCEEDED})
    failed_keys = [
        FailedKey(key=item.key, error=item.outcome.error if item.outcome else None)
        for item in items
        if item.status is ItemStatus.FAILED
    ]
    return BatchSummary(
        total=len(items),
        succeeded=succeeded,
        cached=cached,
        failed=len(failed_keys),
        failed_keys=failed_keys,
    )
