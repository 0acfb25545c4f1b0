"""
Cached fetch-or-create with rate-limit backoff and batch resolution.
"""

from app.fetching.backoff import BackoffPolicy, compute_backoff_delay
from app.fetching.batch import BatchCoordinator
from app.fetching.classifier import is_rate_limit_error
from app.fetching.resolver import FetchOrCreateResolver
from app.fetching.types import (
    BatchResult,
    BatchSummary,
    CacheStrategy,
    FetchOutcome,
    ItemStatus,
    ResourceRecord,
)

__all__ = [
    "BackoffPolicy",
    "BatchCoordinator",
    "BatchResult",
    "BatchSummary",
    "CacheStrategy",
    "FetchOrCreateResolver",
    "FetchOutcome",
    "ItemStatus",
    "ResourceRecord",
    "compute_backoff_delay",
    "is_rate_limit_error",
]
