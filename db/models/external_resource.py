"""
db/models/external_resource.py

Cached outcome of one upstream lookup (scrape, search), one row per key.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

KEY_HASH_CONSTRAINT = "uq_external_resources_key_hash"


class ExternalResourceType:
    FIRECRAWL = "firecrawl"
    SERPER = "serper"
    EXA_SEARCH = "exa_search"
    EXA_CONTENTS = "exa_contents"
    SEARCH_EVALUATION = "search_evaluation"


class ExternalResource(Base, TimestampMixin):
    __tablename__ = "external_resources"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    resource_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="ExternalResourceType value",
    )
    resource_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="URL, search query, or composite key as given by the caller",
    )
    key_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of resource_type:resource_key",
    )
    input_term: Mapped[str | None] = mapped_column(String(767), nullable=True)
    payload: Mapped[Any | None] = mapped_column(JSONB, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("key_hash", name=KEY_HASH_CONSTRAINT),
        Index("ix_external_resources_resource_type", "resource_type"),
        Index("ix_external_resources_input_term", "input_term"),
    )
