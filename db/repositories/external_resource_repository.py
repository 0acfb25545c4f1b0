"""
Persistence for cached upstream resources (one row per key).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from db.models.external_resource import KEY_HASH_CONSTRAINT, ExternalResource


class ExternalResourceRepository:
    """
    Lookup and last-writer-wins upsert for ``external_resources``.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def find_by_key_hash(self, key_hash: str) -> ExternalResource | None:
        stmt = select(ExternalResource).where(ExternalResource.key_hash == key_hash)
        return self._session.scalars(stmt).first()

    def upsert(
        self,
        *,
        resource_type: str,
        resource_key: str,
        key_hash: str,
        success: bool,
        payload: Any = None,
        error_message: str | None = None,
        input_term: str | None = None,
    ) -> ExternalResource:
        """
        INSERT ... ON CONFLICT (key_hash) DO UPDATE and return the stored row.

        A failed attempt keeps the payload of an earlier success and only
        updates the flag, the error and the timestamp.
        """

        stmt = insert(ExternalResource).values(
            resource_type=resource_type,
            resource_key=resource_key,
            key_hash=key_hash,
            input_term=input_term,
            payload=payload,
            success=success,
            error_message=error_message,
        )
        update_set: dict[str, Any] = {
            "success": stmt.excluded.success,
            "error_message": stmt.excluded.error_message,
            "input_term": func.coalesce(stmt.excluded.input_term, ExternalResource.input_term),
            "updated_at": func.now(),
        }
        if success:
            update_set["payload"] = stmt.excluded.payload

        stmt = stmt.on_conflict_do_update(
            constraint=KEY_HASH_CONSTRAINT,
            set_=update_set,
        ).returning(ExternalResource)

        return self._session.scalars(
            stmt,
            execution_options={"populate_existing": True},
        ).one()
