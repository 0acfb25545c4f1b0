"""create external_resources, keywords, workflow_step_runs

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # ---------------------------------------------------------------------------
    # external_resources
    # One row per (resource_type, resource_key), addressed by key_hash.
    # ---------------------------------------------------------------------------
    op.create_table(
        "external_resources",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("resource_type", sa.String(length=50), nullable=False, comment="ExternalResourceType value"),
        sa.Column(
            "resource_key",
            sa.Text(),
            nullable=False,
            comment="URL, search query, or composite key as given by the caller",
        ),
        sa.Column(
            "key_hash",
            sa.String(length=64),
            nullable=False,
            comment="SHA-256 of resource_type:resource_key",
        ),
        sa.Column("input_term", sa.String(length=767), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamp_columns(),
        sa.UniqueConstraint("key_hash", name="uq_external_resources_key_hash"),
        sa.PrimaryKeyConstraint("id", name="pk_external_resources"),
    )
    op.create_index("ix_external_resources_resource_type", "external_resources", ["resource_type"])
    op.create_index("ix_external_resources_input_term", "external_resources", ["input_term"])

    # ---------------------------------------------------------------------------
    # keywords
    # ---------------------------------------------------------------------------
    op.create_table(
        "keywords",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("input_term", sa.String(length=767), nullable=False),
        sa.Column("keyword", sa.String(length=767), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False, comment="titles, headers, related_searches"),
        sa.Column("source_url", sa.String(length=767), nullable=True),
        *_timestamp_columns(),
        sa.UniqueConstraint(
            "input_term",
            "keyword",
            "source",
            name="uq_keywords_input_term_keyword_source",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_keywords"),
    )
    op.create_index("ix_keywords_input_term", "keywords", ["input_term"])

    # ---------------------------------------------------------------------------
    # workflow_step_runs
    # ---------------------------------------------------------------------------
    op.create_table(
        "workflow_step_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("run_id", sa.String(length=64), nullable=False),
        sa.Column("workflow_name", sa.String(length=100), nullable=False),
        sa.Column("step_name", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column(
            "output_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="JSON output reused when a run is resumed",
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamp_columns(),
        sa.UniqueConstraint("run_id", "step_name", name="uq_workflow_step_runs_run_id_step_name"),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_step_runs"),
    )
    op.create_index("ix_workflow_step_runs_run_id", "workflow_step_runs", ["run_id"])
    op.create_index("ix_workflow_step_runs_status", "workflow_step_runs", ["status"])


def downgrade() -> None:
    op.drop_index("ix_workflow_step_runs_status", table_name="workflow_step_runs")
    op.drop_index("ix_workflow_step_runs_run_id", table_name="workflow_step_runs")
    op.drop_table("workflow_step_runs")

    op.drop_index("ix_keywords_input_term", table_name="keywords")
    op.drop_table("keywords")

    op.drop_index("ix_external_resources_input_term", table_name="external_resources")
    op.drop_index("ix_external_resources_resource_type", table_name="external_resources")
    op.drop_table("external_resources")
