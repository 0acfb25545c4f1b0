"""
Storage interface for the resource cache.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.fetching.types import ResourceRecord


class ResourceStore(ABC):
    """
    Key/value cache with one record per (resource_type, key).

    Implementations raise ``StorageError`` on persistence failures.
    """

    @abstractmethod
    def find_by_key(self, resource_type: str, key: str) -> ResourceRecord | None:
        """
        Return the stored record for the key, or None.
        """

    @abstractmethod
    def upsert(self, record: ResourceRecord) -> ResourceRecord:
        """
        Insert or replace the record for its key and return the stored version.
        """
