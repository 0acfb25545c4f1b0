"""
Shared in-memory fakes for the fetch, workflow and keyword layers.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import pytest

from app.fetching.errors import StorageError
from app.fetching.storage.base import ResourceStore
from app.fetching.types import ResourceRecord
from app.services.keyword_store import KeywordRecord, KeywordStore
from app.workflow.store import StepRecord, StepStatusStore
from db.models.workflow_step_run import WorkflowStepStatus


class InMemoryResourceStore(ResourceStore):
    """
    Mirrors the SQL upsert: a failed write keeps the payload of an earlier success.
    """

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], ResourceRecord] = {}
        self.find_calls = 0
        self.upsert_calls = 0
        self.fail_reads = False
        self.fail_writes = False
        self._lock = threading.Lock()

    def find_by_key(self, resource_type: str, key: str) -> ResourceRecord | None:
        with self._lock:
            self.find_calls += 1
            if self.fail_reads:
                raise StorageError("read failed")
            return self.records.get((resource_type, key))

    def upsert(self, record: ResourceRecord) -> ResourceRecord:
        with self._lock:
            self.upsert_calls += 1
            if self.fail_writes:
                raise StorageError("write failed")
            previous = self.records.get((record.resource_type, record.key))
            payload = record.payload
            if not record.success and previous is not None:
                payload = previous.payload
            stored = replace(
                record,
                payload=payload,
                updated_at=datetime.now(timezone.utc),
                persisted=True,
            )
            self.records[(record.resource_type, record.key)] = stored
            return stored


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []
        self._lock = threading.Lock()

    def __call__(self, seconds: float) -> None:
        with self._lock:
            self.calls.append(seconds)


class StatusError(Exception):
    """
    Error shaped like an HTTP client failure with a ``statusCode``-style attribute.
    """

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ScriptedFetch:
    """
    Fetch function driven by a per-key script of results or exceptions.

    Keys without a script return ``{"key": key}``. The last scripted entry
    repeats once the script is exhausted.
    """

    def __init__(self, scripts: dict[str, list[Any]] | None = None) -> None:
        self._scripts = scripts or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, key: str) -> Any:
        with self._lock:
            self.calls.append(key)
            attempt = self.calls.count(key) - 1
        script = self._scripts.get(key)
        if not script:
            return {"key": key}
        entry = script[min(attempt, len(script) - 1)]
        if isinstance(entry, BaseException):
            raise entry
        return entry

    def count(self, key: str) -> int:
        return self.calls.count(key)


class InMemoryKeywordStore(KeywordStore):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str, str], KeywordRecord] = {}
        self.fail_writes = False

    def list_for_term(self, input_term: str, *, source: str | None = None) -> list[KeywordRecord]:
        return [
            record
            for (term, _, record_source), record in sorted(self.rows.items())
            if term == input_term and (source is None or record_source == source)
        ]

    def upsert_many(
        self,
        *,
        input_term: str,
        source: str,
        rows: Sequence[tuple[str, str | None]],
    ) -> list[KeywordRecord]:
        if self.fail_writes:
            raise RuntimeError("keyword write failed")
        stored: list[KeywordRecord] = []
        seen: set[str] = set()
        for keyword, source_url in rows:
            normalized = keyword.strip().lower()
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            key = (input_term, normalized, source)
            record = self.rows.get(key) or KeywordRecord(
                input_term=input_term,
                keyword=normalized,
                source=source,
                source_url=source_url,
            )
            self.rows[key] = record
            stored.append(record)
        return stored


class InMemoryStepStatusStore(StepStatusStore):
    def __init__(self) -> None:
        self.steps: dict[tuple[str, str], StepRecord] = {}
        self.order: list[tuple[str, str]] = []
        self.transitions: list[tuple[str, str]] = []

    def register_steps(self, *, run_id: str, workflow_name: str, step_names: Sequence[str]) -> None:
        for step_name in step_names:
            key = (run_id, step_name)
            if key not in self.steps:
                self.steps[key] = StepRecord(
                    run_id=run_id,
                    workflow_name=workflow_name,
                    step_name=step_name,
                    status=WorkflowStepStatus.PENDING,
                )
                self.order.append(key)

    def get_step(self, *, run_id: str, step_name: str) -> StepRecord | None:
        return self.steps.get((run_id, step_name))

    def list_steps(self, *, run_id: str) -> list[StepRecord]:
        return [self.steps[key] for key in self.order if key[0] == run_id]

    def _update(self, run_id: str, step_name: str, **changes: Any) -> None:
        key = (run_id, step_name)
        self.steps[key] = replace(self.steps[key], **changes)
        self.transitions.append((step_name, changes["status"]))

    def mark_running(self, *, run_id: str, step_name: str) -> None:
        current = self.steps[(run_id, step_name)]
        self._update(
            run_id,
            step_name,
            status=WorkflowStepStatus.RUNNING,
            attempts=current.attempts + 1,
            error=None,
        )

    def mark_succeeded(self, *, run_id: str, step_name: str, output: Any) -> None:
        self._update(run_id, step_name, status=WorkflowStepStatus.SUCCEEDED, output=output)

    def mark_failed(self, *, run_id: str, step_name: str, error: str) -> None:
        self._update(run_id, step_name, status=WorkflowStepStatus.FAILED, error=error)


@pytest.fixture()
def resource_store() -> InMemoryResourceStore:
    return InMemoryResourceStore()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def keyword_store() -> InMemoryKeywordStore:
    return InMemoryKeywordStore()


@pytest.fixture()
def step_store() -> InMemoryStepStatusStore:
    return InMemoryStepStatusStore()
