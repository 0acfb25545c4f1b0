"""
Keyword persistence used by the keyword research workflow.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from db.models.keyword import Keyword
from db.repositories.keyword_repository import KeywordRepository


@dataclass(frozen=True)
class KeywordRecord:
    input_term: str
    keyword: str
    source: str
    source_url: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "inputTerm": self.input_term,
            "keyword": self.keyword,
            "source": self.source,
            "sourceUrl": self.source_url,
        }


class KeywordStore(ABC):
    @abstractmethod
    def list_for_term(self, input_term: str, *, source: str | None = None) -> list[KeywordRecord]:
        ...

    @abstractmethod
    def upsert_many(
        self,
        *,
        input_term: str,
        source: str,
        rows: Sequence[tuple[str, str | None]],
    ) -> list[KeywordRecord]:
        """
        Store (keyword, source_url) pairs and return the stored keywords.
        """


def _to_keyword_record(row: Keyword) -> KeywordRecord:
    return KeywordRecord(
        input_term=row.input_term,
        keyword=row.keyword,
        source=row.source,
        source_url=row.source_url,
    )


class SQLAlchemyKeywordStore(KeywordStore):
    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def list_for_term(self, input_term: str, *, source: str | None = None) -> list[KeywordRecord]:
        with self._session_factory() as session:
            rows = KeywordRepository(session).list_for_term(input_term, source=source)
            return [_to_keyword_record(row) for row in rows]

    def upsert_many(
        self,
        *,
        input_term: str,
        source: str,
        rows: Sequence[tuple[str, str | None]],
    ) -> list[KeywordRecord]:
        with self._session_factory() as session:
            try:
                stored = [
                    _to_keyword_record(row)
                    for row in KeywordRepository(session).upsert_many(
                        input_term=input_term,
                        source=source,
                        rows=rows,
                    )
                ]
                session.commit()
            except Exception:
                session.rollback()
                raise
            return stored
