"""
db/models/keyword.py

Keywords collected for a glossary term during keyword research.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

KEYWORD_DEDUPE_CONSTRAINT = "uq_keywords_input_term_keyword_source"


class KeywordSource:
    TITLES = "titles"
    HEADERS = "headers"
    RELATED_SEARCHES = "related_searches"


class Keyword(Base, TimestampMixin):
    __tablename__ = "keywords"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    input_term: Mapped[str] = mapped_column(String(767), nullable=False)
    keyword: Mapped[str] = mapped_column(String(767), nullable=False)
    source: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="titles, headers, related_searches",
    )
    source_url: Mapped[str | None] = mapped_column(String(767), nullable=True)

    __table_args__ = (
        UniqueConstraint("input_term", "keyword", "source", name=KEYWORD_DEDUPE_CONSTRAINT),
        Index("ix_keywords_input_term", "input_term"),
    )
