"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.external_resource import ExternalResource
from db.models.keyword import Keyword
from db.models.workflow_step_run import WorkflowStepRun

__all__ = [
    "ExternalResource",
    "Keyword",
    "WorkflowStepRun",
]
