"""
tests/test_fetch_or_create.py

FetchOrCreateResolver behaviour against an in-memory store.

Coverage
--------
- Cache idempotence (second call makes zero network calls)
- Rate-limited attempts retried with increasing, bounded waits
- Permanent failures: exactly one attempt, failure record, no raise
- No negative caching
- REVALIDATE bypasses a successful record
- Storage failures degrade to transient records
"""

from __future__ import annotations

import pytest
from conftest import InMemoryResourceStore, RecordingSleep, ScriptedFetch, StatusError

from app.config import RetrySettings
from app.fetching.backoff import BackoffPolicy
from app.fetching.errors import PermanentFetchError, RateLimitedError
from app.fetching.resolver import FetchOrCreateResolver
from app.fetching.types import CacheStrategy, ItemStatus

BASE_DELAY = 2.0


def _resolver(
    store: InMemoryResourceStore,
    sleep: RecordingSleep,
    *,
    max_retries: int = 3,
    rng=None,
) -> FetchOrCreateResolver:
    settings = RetrySettings(base_delay_seconds=BASE_DELAY, max_retries=max_retries, jitter_seconds=1.0)
    backoff = BackoffPolicy.from_settings(settings)
    if rng is not None:
        backoff = BackoffPolicy(base_delay_seconds=BASE_DELAY, jitter_seconds=1.0, rng=rng)
    return FetchOrCreateResolver(
        resource_type="firecrawl",
        store=store,
        retry_settings=settings,
        backoff=backoff,
        sleep=sleep,
    )


# ---------------------------------------------------------------------------
# Cache behaviour
# ---------------------------------------------------------------------------


class TestCache:
    def test_second_call_is_served_from_cache(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        fetch = ScriptedFetch({"https://a.dev": [{"markdown": "# A"}]})
        resolver = _resolver(resource_store, recording_sleep)

        first = resolver.resolve("https://a.dev", fetch)
        second = resolver.resolve("https://a.dev", fetch)

        assert first.status is ItemStatus.SUCCEEDED
        assert second.status is ItemStatus.CACHED
        assert second.record.payload == {"markdown": "# A"}
        assert fetch.count("https://a.dev") == 1
        assert second.attempts == ()

    def test_cache_hit_performs_no_write(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        resolver = _resolver(resource_store, recording_sleep)
        resolver.resolve("k", ScriptedFetch())
        resolver.resolve("k", ScriptedFetch())

        assert resource_store.upsert_calls == 1

    def test_failed_record_is_not_a_cache_hit(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        fetch = ScriptedFetch({"k": [PermanentFetchError("boom", status_code=400), {"ok": True}]})
        resolver = _resolver(resource_store, recording_sleep)

        failed = resolver.resolve("k", fetch)
        retried = resolver.resolve("k", fetch)

        assert failed.status is ItemStatus.FAILED
        assert retried.status is ItemStatus.SUCCEEDED
        assert retried.record.payload == {"ok": True}
        assert fetch.count("k") == 2

    def test_revalidate_always_fetches(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        fetch = ScriptedFetch({"k": [{"v": 1}, {"v": 2}]})
        resolver = _resolver(resource_store, recording_sleep)

        resolver.resolve("k", fetch)
        refreshed = resolver.resolve("k", fetch, cache_strategy=CacheStrategy.REVALIDATE)

        assert refreshed.status is ItemStatus.SUCCEEDED
        assert refreshed.record.payload == {"v": 2}
        assert resource_store.records[("firecrawl", "k")].payload == {"v": 2}

    def test_keys_are_namespaced_by_resource_type(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        _resolver(resource_store, recording_sleep).resolve("k", ScriptedFetch())
        other = FetchOrCreateResolver(resource_type="serper", store=resource_store, sleep=recording_sleep)
        fetch = ScriptedFetch()

        outcome = other.resolve("k", fetch)

        assert outcome.status is ItemStatus.SUCCEEDED
        assert fetch.count("k") == 1


# ---------------------------------------------------------------------------
# Retry behaviour
# ---------------------------------------------------------------------------


class TestRetries:
    @pytest.mark.parametrize("succeeds_on", [1, 2, 3])
    def test_nth_attempt_success_observes_n_minus_one_waits(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
        succeeds_on: int,
    ) -> None:
        script = [StatusError("throttled", 429)] * (succeeds_on - 1) + [{"ok": succeeds_on}]
        fetch = ScriptedFetch({"k": script})

        outcome = _resolver(resource_store, recording_sleep).resolve("k", fetch)

        assert outcome.status is ItemStatus.SUCCEEDED
        assert outcome.record.payload == {"ok": succeeds_on}
        assert len(recording_sleep.calls) == succeeds_on - 1
        for index, wait in enumerate(recording_sleep.calls):
            assert BASE_DELAY * 2**index <= wait < BASE_DELAY * 2**index + 1.0

    def test_exhausted_retries_store_failure_without_raising(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        fetch = ScriptedFetch({"k": [RateLimitedError()]})

        outcome = _resolver(resource_store, recording_sleep).resolve("k", fetch)

        assert outcome.status is ItemStatus.FAILED
        assert outcome.success is False
        assert "429" in (outcome.error or "")
        assert fetch.count("k") == 4
        assert len(recording_sleep.calls) == 3
        assert recording_sleep.calls == sorted(recording_sleep.calls)
        assert [attempt.number for attempt in outcome.attempts] == [1, 2, 3, 4]
        assert outcome.attempts[-1].delay_seconds is None
        assert resource_store.upsert_calls == 1
        assert resource_store.records[("firecrawl", "k")].success is False

    def test_waits_use_injected_jitter(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        fetch = ScriptedFetch({"k": [RateLimitedError(), RateLimitedError(), {"ok": True}]})

        _resolver(resource_store, recording_sleep, rng=lambda: 0.5).resolve("k", fetch)

        assert recording_sleep.calls == [pytest.approx(2.5), pytest.approx(4.5)]

    @pytest.mark.parametrize(
        "error",
        [
            PermanentFetchError("bad request", status_code=400),
            StatusError("server error", 500),
            ValueError("malformed url"),
        ],
    )
    def test_permanent_failure_is_attempted_once(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
        error: Exception,
    ) -> None:
        fetch = ScriptedFetch({"k": [error]})

        outcome = _resolver(resource_store, recording_sleep).resolve("k", fetch)

        assert outcome.status is ItemStatus.FAILED
        assert outcome.error == str(error)
        assert fetch.count("k") == 1
        assert recording_sleep.calls == []
        assert resource_store.upsert_calls == 1

    def test_zero_max_retries_makes_a_single_attempt(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        fetch = ScriptedFetch({"k": [RateLimitedError()]})

        outcome = _resolver(resource_store, recording_sleep, max_retries=0).resolve("k", fetch)

        assert outcome.status is ItemStatus.FAILED
        assert fetch.count("k") == 1
        assert recording_sleep.calls == []


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class TestStorageFailures:
    def test_write_failure_returns_transient_record(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        resource_store.fail_writes = True

        outcome = _resolver(resource_store, recording_sleep).resolve("k", ScriptedFetch())

        assert outcome.status is ItemStatus.SUCCEEDED
        assert outcome.record.payload == {"key": "k"}
        assert outcome.record.persisted is False

    def test_read_failure_is_treated_as_miss(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        resolver = _resolver(resource_store, recording_sleep)
        resolver.resolve("k", ScriptedFetch())
        resource_store.fail_reads = True
        fetch = ScriptedFetch()

        outcome = resolver.resolve("k", fetch)

        assert outcome.status is ItemStatus.SUCCEEDED
        assert fetch.count("k") == 1

    def test_failure_after_success_keeps_previous_payload(
        self,
        resource_store: InMemoryResourceStore,
        recording_sleep: RecordingSleep,
    ) -> None:
        resolver = _resolver(resource_store, recording_sleep)
        resolver.resolve("k", ScriptedFetch({"k": [{"v": 1}]}))

        outcome = resolver.resolve(
            "k",
            ScriptedFetch({"k": [PermanentFetchError("gone", status_code=404)]}),
            cache_strategy=CacheStrategy.REVALIDATE,
        )

        assert outcome.success is False
        assert outcome.error == "gone"
        assert outcome.record.payload == {"v": 1}
