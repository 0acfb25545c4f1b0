"""
Repository for workflow step lifecycle persistence and resumption lookups.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from db.models.workflow_step_run import RUN_STEP_CONSTRAINT, WorkflowStepRun, WorkflowStepStatus


class WorkflowStepRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_step(self, *, run_id: str, step_name: str) -> WorkflowStepRun | None:
        stmt = select(WorkflowStepRun).where(
            WorkflowStepRun.run_id == run_id,
            WorkflowStepRun.step_name == step_name,
        )
        return self._session.scalars(stmt).first()

    def list_steps(self, *, run_id: str) -> list[WorkflowStepRun]:
        stmt = (
            select(WorkflowStepRun)
            .where(WorkflowStepRun.run_id == run_id)
            .order_by(WorkflowStepRun.created_at)
        )
        return list(self._session.scalars(stmt).all())

    def ensure_pending(self, *, run_id: str, workflow_name: str, step_name: str) -> None:
        """
        Create the step row if missing; existing rows keep their status.
        """

        stmt = (
            insert(WorkflowStepRun)
            .values(
                run_id=run_id,
                workflow_name=workflow_name,
                step_name=step_name,
                status=WorkflowStepStatus.PENDING,
                attempts=0,
            )
            .on_conflict_do_nothing(constraint=RUN_STEP_CONSTRAINT)
        )
        self._session.execute(stmt)

    def mark_running(self, *, run_id: str, step_name: str) -> WorkflowStepRun | None:
        step = self.get_step(run_id=run_id, step_name=step_name)
        if step is None:
            return None
        step.status = WorkflowStepStatus.RUNNING
        step.attempts = (step.attempts or 0) + 1
        step.started_at = datetime.now(timezone.utc)
        step.completed_at = None
        step.error_message = None
        return step

    def mark_succeeded(
        self,
        *,
        run_id: str,
        step_name: str,
        output_payload: Any = None,
    ) -> WorkflowStepRun | None:
        step = self.get_step(run_id=run_id, step_name=step_name)
        if step is None:
            return None
        step.status = WorkflowStepStatus.SUCCEEDED
        step.completed_at = datetime.now(timezone.utc)
        step.output_payload = output_payload
        step.error_message = None
        return step

    def mark_failed(self, *, run_id: str, step_name: str, error_message: str) -> WorkflowStepRun | None:
        step = self.get_step(run_id=run_id, step_name=step_name)
        if step is None:
            return None
        step.status = WorkflowStepStatus.FAILED
        step.completed_at = datetime.now(timezone.utc)
        step.error_message = error_message
        return step

