"""
Repository layer exports.
"""

from db.repositories.external_resource_repository import ExternalResourceRepository
from db.repositories.keyword_repository import KeywordRepository
from db.repositories.workflow_step_repository import WorkflowStepRepository

__all__ = [
    "ExternalResourceRepository",
    "KeywordRepository",
    "WorkflowStepRepository",
]
