"""
Sequential workflow runner with persisted step status and manual resumption.

Each step moves pending -> running -> {succeeded | failed}. A failed step can
be re-run (failed -> running) by starting the same run_id again; succeeded
steps are skipped and their stored output is handed to later steps.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from app.fetching.logging_utils import log_event
from app.workflow.store import StepStatusStore
from db.models.workflow_step_run import WorkflowStepStatus

logger = logging.getLogger(__name__)

StepFunction = Callable[[dict[str, Any]], Any]

_ALLOWED_STEP_TRANSITIONS: dict[str, frozenset[str]] = {
    WorkflowStepStatus.PENDING: frozenset({WorkflowStepStatus.RUNNING}),
    # A crashed process can leave a step running; restarting re-enters it.
    WorkflowStepStatus.RUNNING: frozenset(
        {WorkflowStepStatus.RUNNING, WorkflowStepStatus.SUCCEEDED, WorkflowStepStatus.FAILED}
    ),
    WorkflowStepStatus.FAILED: frozenset({WorkflowStepStatus.RUNNING}),
    WorkflowStepStatus.SUCCEEDED: frozenset(),
}


def can_transition(current: str, new: str) -> bool:
    return new in _ALLOWED_STEP_TRANSITIONS.get(current, frozenset())


class WorkflowStepError(RuntimeError):
    """
    Raised when a workflow step fails; the step is already marked failed.
    """

    def __init__(self, run_id: str, step_name: str, message: str) -> None:
        super().__init__(f"Workflow step '{step_name}' failed for run '{run_id}': {message}")
        self.run_id = run_id
        self.step_name = step_name
        self.message = message


@dataclass(frozen=True)
class WorkflowStep:
    """
    Named unit of work. ``fn`` receives the outputs of earlier steps keyed by
    step name and must return a JSON-serializable value.
    """

    name: str
    fn: StepFunction


@dataclass
class WorkflowRunResult:
    run_id: str
    workflow_name: str
    outputs: dict[str, Any] = field(default_factory=dict)
    executed_steps: list[str] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)


def new_run_id() -> str:
    return uuid.uuid4().hex


class WorkflowRunner:
    def __init__(
        self,
        *,
        workflow_name: str,
        steps: Sequence[WorkflowStep],
        store: StepStatusStore,
    ) -> None:
        names = [step.name for step in steps]
        if len(names) != len(set(names)):
            raise ValueError(f"Workflow '{workflow_name}' has duplicate step names.")
        self.workflow_name = workflow_name
        self._steps = list(steps)
        self._store = store

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def run(self, *, run_id: str | None = None) -> WorkflowRunResult:
        resolved_run_id = run_id or new_run_id()
        self._store.register_steps(
            run_id=resolved_run_id,
            workflow_name=self.workflow_name,
            step_names=self.step_names,
        )
        result = WorkflowRunResult(run_id=resolved_run_id, workflow_name=self.workflow_name)

        for index, step in enumerate(self._steps, start=1):
            existing = self._store.get_step(run_id=resolved_run_id, step_name=step.name)
            current_status = existing.status if existing is not None else WorkflowStepStatus.PENDING

            if current_status == WorkflowStepStatus.SUCCEEDED:
                result.outputs[step.name] = existing.output if existing is not None else None
                result.skipped_steps.append(step.name)
                log_event(
                    logger,
                    logging.INFO,
                    "workflow_step_skipped",
                    run_id=resolved_run_id,
                    workflow=self.workflow_name,
                    step=step.name,
                )
                continue

            if not can_transition(current_status, WorkflowStepStatus.RUNNING):
                raise WorkflowStepError(
                    resolved_run_id,
                    step.name,
                    f"cannot start a step in status '{current_status}'",
                )

            self._store.mark_running(run_id=resolved_run_id, step_name=step.name)
            log_event(
                logger,
                logging.INFO,
                "workflow_step_started",
                run_id=resolved_run_id,
                workflow=self.workflow_name,
                step=step.name,
                position=f"{index}/{len(self._steps)}",
            )
            try:
                output = step.fn(dict(result.outputs))
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                self._store.mark_failed(run_id=resolved_run_id, step_name=step.name, error=message)
                log_event(
                    logger,
                    logging.ERROR,
                    "workflow_step_failed",
                    run_id=resolved_run_id,
                    workflow=self.workflow_name,
                    step=step.name,
                    error=message,
                )
                raise WorkflowStepError(resolved_run_id, step.name, message) from exc

            self._store.mark_succeeded(run_id=resolved_run_id, step_name=step.name, output=output)
            result.outputs[step.name] = output
            result.executed_steps.append(step.name)
            log_event(
                logger,
                logging.INFO,
                "workflow_step_succeeded",
                run_id=resolved_run_id,
                workflow=self.workflow_name,
                step=step.name,
            )

        return result
