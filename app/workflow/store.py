"""
Step-status persistence for resumable workflow runs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from db.models.workflow_step_run import WorkflowStepRun
from db.repositories.workflow_step_repository import WorkflowStepRepository


@dataclass(frozen=True)
class StepRecord:
    run_id: str
    workflow_name: str
    step_name: str
    status: str
    attempts: int = 0
    output: Any = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class StepStatusStore(ABC):
    """
    Table of step runs keyed by (run_id, step_name).
    """

    @abstractmethod
    def register_steps(self, *, run_id: str, workflow_name: str, step_names: Sequence[str]) -> None:
        """
        Create pending rows for steps not yet known for this run.
        """

    @abstractmethod
    def get_step(self, *, run_id: str, step_name: str) -> StepRecord | None:
        ...

    @abstractmethod
    def list_steps(self, *, run_id: str) -> list[StepRecord]:
        ...

    @abstractmethod
    def mark_running(self, *, run_id: str, step_name: str) -> None:
        ...

    @abstractmethod
    def mark_succeeded(self, *, run_id: str, step_name: str, output: Any) -> None:
        ...

    @abstractmethod
    def mark_failed(self, *, run_id: str, step_name: str, error: str) -> None:
        ...


def _to_step_record(row: WorkflowStepRun) -> StepRecord:
    return StepRecord(
        run_id=row.run_id,
        workflow_name=row.workflow_name,
        step_name=row.step_name,
        status=row.status,
        attempts=row.attempts or 0,
        output=row.output_payload,
        error=row.error_message,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


class SQLAlchemyStepStatusStore(StepStatusStore):
    """
    Commits every transition immediately so a crashed run leaves an accurate table.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def register_steps(self, *, run_id: str, workflow_name: str, step_names: Sequence[str]) -> None:
        with self._session_factory() as session:
            repository = WorkflowStepRepository(session)
            for step_name in step_names:
                repository.ensure_pending(run_id=run_id, workflow_name=workflow_name, step_name=step_name)
            session.commit()

    def get_step(self, *, run_id: str, step_name: str) -> StepRecord | None:
        with self._session_factory() as session:
            row = WorkflowStepRepository(session).get_step(run_id=run_id, step_name=step_name)
            return _to_step_record(row) if row is not None else None

    def list_steps(self, *, run_id: str) -> list[StepRecord]:
        with self._session_factory() as session:
            return [_to_step_record(row) for row in WorkflowStepRepository(session).list_steps(run_id=run_id)]

    def mark_running(self, *, run_id: str, step_name: str) -> None:
        with self._session_factory() as session:
            WorkflowStepRepository(session).mark_running(run_id=run_id, step_name=step_name)
            session.commit()

    def mark_succeeded(self, *, run_id: str, step_name: str, output: Any) -> None:
        with self._session_factory() as session:
            WorkflowStepRepository(session).mark_succeeded(
                run_id=run_id,
                step_name=step_name,
                output_payload=output,
            )
            session.commit()

    def mark_failed(self, *, run_id: str, step_name: str, error: str) -> None:
        with self._session_factory() as session:
            WorkflowStepRepository(session).mark_failed(
                run_id=run_id,
                step_name=step_name,
                error_message=error,
            )
            session.commit()
