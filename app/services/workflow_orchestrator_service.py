"""
Orchestrator service for background workflow dispatch and status lookup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from functools import lru_cache
from typing import Any, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.fetching.types import CacheStrategy
from app.services.keyword_research_service import (
    KEYWORD_RESEARCH_STEPS,
    KeywordResearchService,
    get_keyword_research_service,
)
from app.services.keyword_research_service import WORKFLOW_NAME as KEYWORD_RESEARCH_WORKFLOW
from app.services.technical_research_service import (
    TECHNICAL_RESEARCH_STEPS,
    TechnicalResearchService,
    get_technical_research_service,
)
from app.services.technical_research_service import WORKFLOW_NAME as TECHNICAL_RESEARCH_WORKFLOW
from app.workflow import SQLAlchemyStepStatusStore, StepRecord, StepStatusStore, WorkflowStepError, new_run_id

logger = logging.getLogger(__name__)


class WorkflowTaskExecutor(Protocol):
    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        ...


class ResearchService(Protocol):
    def run(self, term: str, *, cache_strategy: CacheStrategy, run_id: str | None) -> Any:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


class WorkflowOrchestratorService:
    """
    Registers a run up front so its status is queryable before the task starts.
    """

    def __init__(
        self,
        *,
        step_store: StepStatusStore | None = None,
        keyword_research_service: Callable[[], KeywordResearchService] | None = None,
        technical_research_service: Callable[[], TechnicalResearchService] | None = None,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        if step_store is None:
            if session_factory is None:
                from db.session import SessionLocal

                session_factory = SessionLocal
            step_store = SQLAlchemyStepStatusStore(session_factory=session_factory)
        self._step_store = step_store
        self._keyword_service_provider = keyword_research_service or get_keyword_research_service
        self._technical_service_provider = technical_research_service or get_technical_research_service

    def trigger_keyword_research(
        self,
        *,
        executor: WorkflowTaskExecutor,
        term: str,
        cache_strategy: CacheStrategy = CacheStrategy.STALE,
        run_id: str | None = None,
    ) -> str:
        return self._trigger(
            executor=executor,
            service=self._keyword_service_provider(),
            workflow_name=KEYWORD_RESEARCH_WORKFLOW,
            step_names=KEYWORD_RESEARCH_STEPS,
            term=term,
            cache_strategy=cache_strategy,
            run_id=run_id,
        )

    def trigger_technical_research(
        self,
        *,
        executor: WorkflowTaskExecutor,
        term: str,
        cache_strategy: CacheStrategy = CacheStrategy.STALE,
        run_id: str | None = None,
    ) -> str:
        return self._trigger(
            executor=executor,
            service=self._technical_service_provider(),
            workflow_name=TECHNICAL_RESEARCH_WORKFLOW,
            step_names=TECHNICAL_RESEARCH_STEPS,
            term=term,
            cache_strategy=cache_strategy,
            run_id=run_id,
        )

    def get_run_steps(self, *, run_id: str) -> list[StepRecord]:
        return self._step_store.list_steps(run_id=run_id)

    def _trigger(
        self,
        *,
        executor: WorkflowTaskExecutor,
        service: ResearchService,
        workflow_name: str,
        step_names: Sequence[str],
        term: str,
        cache_strategy: CacheStrategy,
        run_id: str | None,
    ) -> str:
        resolved_run_id = run_id or new_run_id()
        self._step_store.register_steps(
            run_id=resolved_run_id,
            workflow_name=workflow_name,
            step_names=step_names,
        )
        executor.submit(
            self._execute_workflow,
            service=service,
            workflow_name=workflow_name,
            term=term,
            cache_strategy=cache_strategy,
            run_id=resolved_run_id,
        )
        logger.info("Workflow queued workflow=%s term=%s run_id=%s", workflow_name, term, resolved_run_id)
        return resolved_run_id

    @staticmethod
    def _execute_workflow(
        *,
        service: ResearchService,
        workflow_name: str,
        term: str,
        cache_strategy: CacheStrategy,
        run_id: str,
    ) -> None:
        try:
            service.run(term, cache_strategy=cache_strategy, run_id=run_id)
        except WorkflowStepError as exc:
            # Step status already records the failure; the run can be resumed.
            logger.error("Workflow failed workflow=%s term=%s run_id=%s error=%s", workflow_name, term, run_id, exc)
        except Exception:
            logger.exception("Workflow crashed workflow=%s term=%s run_id=%s", workflow_name, term, run_id)


def summarize_run_status(steps: list[StepRecord]) -> str:
    statuses = {step.status for step in steps}
    if not steps:
        return "unknown"
    if "failed" in statuses:
        return "failed"
    if statuses == {"succeeded"}:
        return "succeeded"
    if statuses == {"pending"}:
        return "pending"
    return "running"


@lru_cache(maxsize=1)
def get_workflow_orchestrator_service() -> WorkflowOrchestratorService:
    """
    Build and cache workflow orchestrator service.
    """

    return WorkflowOrchestratorService()
