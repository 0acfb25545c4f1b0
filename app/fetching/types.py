"""
Shared runtime data models for cached fetches and batches.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class CacheStrategy(str, Enum):
    """
    How a stored successful record is treated on lookup.

    STALE returns it without a network call; REVALIDATE always refetches.
    """

    STALE = "stale"
    REVALIDATE = "revalidate"


class ItemStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    CACHED = "cached"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({ItemStatus.CACHED, ItemStatus.SUCCEEDED, ItemStatus.FAILED})

_ALLOWED_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.IN_FLIGHT}),
    ItemStatus.IN_FLIGHT: _TERMINAL_STATUSES,
}


class InvalidTransitionError(RuntimeError):
    """
    Raised when a batch item is moved along an edge the state machine forbids.
    """


@dataclass(frozen=True)
class ResourceRecord:
    """
    In-memory view of one cached resource row.

    ``persisted`` is False when the cache write failed and the record only
    exists for the current call.
    """

    resource_type: str
    key: str
    success: bool
    payload: Any = None
    error: str | None = None
    input_term: str | None = None
    updated_at: datetime | None = None
    persisted: bool = True

    def as_transient(self) -> "ResourceRecord":
        return replace(self, persisted=False)


@dataclass(frozen=True)
class FetchAttempt:
    """
    One call to the upstream fetch function. ``delay_seconds`` is the wait
    scheduled after it, or None when no retry followed.
    """

    number: int
    delay_seconds: float | None = None
    error: str | None = None


@dataclass(frozen=True)
class FetchOutcome:
    """
    Result of one fetch-or-create resolution.
    """

    key: str
    status: ItemStatus
    record: ResourceRecord
    attempts: tuple[FetchAttempt, ...] = ()

    @property
    def success(self) -> bool:
        return self.record.success

    @property
    def error(self) -> str | None:
        return self.record.error


@dataclass
class BatchItem:
    """
    Tracks one key through pending -> in_flight -> {cached | succeeded | failed}.
    """

    key: str
    status: ItemStatus = ItemStatus.PENDING
    outcome: FetchOutcome | None = None

    def transition(self, new_status: ItemStatus) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidTransitionError(
                f"Batch item '{self.key}' cannot move from {self.status.value} to {new_status.value}."
            )
        self.status = new_status

    def complete(self, outcome: FetchOutcome) -> None:
        self.transition(outcome.status)
        self.outcome = outcome


@dataclass(frozen=True)
class FailedKey:
    key: str
    error: str | None


@dataclass(frozen=True)
class BatchSummary:
    """
    Aggregate counts for one batch. ``succeeded`` includes cache hits.
    """

    total: int
    succeeded: int
    cached: int
    failed: int
    failed_keys: list[FailedKey] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "cached": self.cached,
            "failed": self.failed,
            "failed_keys": [{"key": item.key, "error": item.error} for item in self.failed_keys],
        }


@dataclass(frozen=True)
class BatchResult:
    items: list[BatchItem]
    summary: BatchSummary

    @property
    def outcomes(self) -> list[FetchOutcome]:
        return [item.outcome for item in self.items if item.outcome is not None]
