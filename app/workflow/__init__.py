"""
Resumable step workflows.
"""

from app.workflow.runner import (
    WorkflowRunner,
    WorkflowRunResult,
    WorkflowStep,
    WorkflowStepError,
    new_run_id,
)
from app.workflow.store import SQLAlchemyStepStatusStore, StepRecord, StepStatusStore

__all__ = [
    "SQLAlchemyStepStatusStore",
    "StepRecord",
    "StepStatusStore",
    "WorkflowRunResult",
    "WorkflowRunner",
    "WorkflowStep",
    "WorkflowStepError",
    "new_run_id",
]
