"""
SQLAlchemy-backed resource cache.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.fetching.errors import StorageError
from app.fetching.hashing import compute_key_hash
from app.fetching.storage.base import ResourceStore
from app.fetching.types import ResourceRecord
from db.models.external_resource import ExternalResource
from db.repositories.external_resource_repository import ExternalResourceRepository


def _to_record(row: ExternalResource) -> ResourceRecord:
    return ResourceRecord(
        resource_type=row.resource_type,
        key=row.resource_key,
        success=row.success,
        payload=row.payload,
        error=row.error_message,
        input_term=row.input_term,
        updated_at=row.updated_at,
    )


class SQLAlchemyResourceStore(ResourceStore):
    """
    Opens one short-lived session per operation so batch worker threads
    never share a session.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def find_by_key(self, resource_type: str, key: str) -> ResourceRecord | None:
        key_hash = compute_key_hash(resource_type, key)
        try:
            with self._session_factory() as session:
                row = ExternalResourceRepository(session).find_by_key_hash(key_hash)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read cached {resource_type} resource '{key}'.") from exc

    def upsert(self, record: ResourceRecord) -> ResourceRecord:
        try:
            with self._session_factory() as session:
                repository = ExternalResourceRepository(session)
                try:
                    row = repository.upsert(
                        resource_type=record.resource_type,
                        resource_key=record.key,
                        key_hash=compute_key_hash(record.resource_type, record.key),
                        success=record.success,
                        payload=record.payload,
                        error_message=record.error,
                        input_term=record.input_term,
                    )
                    stored = _to_record(row)
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    raise
                return stored
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to store {record.resource_type} resource '{record.key}'.") from exc
