"""
Repository for glossary keyword persistence.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from db.models.keyword import KEYWORD_DEDUPE_CONSTRAINT, Keyword


class KeywordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_for_term(self, input_term: str, *, source: str | None = None) -> list[Keyword]:
        stmt = select(Keyword).where(Keyword.input_term == input_term)
        if source:
            stmt = stmt.where(Keyword.source == source)
        stmt = stmt.order_by(Keyword.source, Keyword.keyword)
        return list(self._session.scalars(stmt).all())

    def upsert_many(
        self,
        *,
        input_term: str,
        source: str,
        rows: Sequence[tuple[str, str | None]],
    ) -> list[Keyword]:
        """
        Insert (keyword, source_url) pairs; duplicates only touch updated_at.

        Keywords are lower-cased and de-duplicated before the statement is built.
        """

        payloads: list[dict[str, Any]] = []
        seen: set[str] = set()
        for keyword, source_url in rows:
            normalized = keyword.strip().lower()
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            payloads.append(
                {
                    "input_term": input_term,
                    "keyword": normalized,
                    "source": source,
                    "source_url": source_url,
                }
            )

        if not payloads:
            return []

        stmt = (
            insert(Keyword)
            .values(payloads)
            .on_conflict_do_update(
                constraint=KEYWORD_DEDUPE_CONSTRAINT,
                set_={"updated_at": func.now()},
            )
            .returning(Keyword)
        )
        return list(
            self._session.scalars(
                stmt,
                execution_options={"populate_existing": True},
            ).all()
        )
