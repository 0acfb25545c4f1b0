"""
Workflow trigger and status endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from app.fetching.types import CacheStrategy
from app.schemas.workflows import (
    KeywordResearchRequest,
    TechnicalResearchRequest,
    WorkflowRunAcceptedResponse,
    WorkflowRunStatusResponse,
    WorkflowStepStatusResponse,
)
from app.services.keyword_research_service import WORKFLOW_NAME as KEYWORD_RESEARCH_WORKFLOW
from app.services.technical_research_service import WORKFLOW_NAME as TECHNICAL_RESEARCH_WORKFLOW
from app.services.workflow_orchestrator_service import (
    FastAPIBackgroundTaskExecutor,
    WorkflowOrchestratorService,
    get_workflow_orchestrator_service,
    summarize_run_status,
)
from app.workflow import StepRecord

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.post(
    "/keyword-research",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=WorkflowRunAcceptedResponse,
)
def trigger_keyword_research(
    payload: KeywordResearchRequest,
    background_tasks: BackgroundTasks,
    orchestrator: WorkflowOrchestratorService = Depends(get_workflow_orchestrator_service),
) -> WorkflowRunAcceptedResponse:
    cache_strategy = CacheStrategy.REVALIDATE if payload.revalidate else CacheStrategy.STALE
    run_id = orchestrator.trigger_keyword_research(
        executor=FastAPIBackgroundTaskExecutor(background_tasks),
        term=payload.term,
        cache_strategy=cache_strategy,
        run_id=payload.run_id,
    )
    return WorkflowRunAcceptedResponse(
        run_id=run_id,
        workflow_name=KEYWORD_RESEARCH_WORKFLOW,
        term=payload.term,
        cache_strategy=cache_strategy.value,
    )


@router.post(
    "/technical-research",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=WorkflowRunAcceptedResponse,
)
def trigger_technical_research(
    payload: TechnicalResearchRequest,
    background_tasks: BackgroundTasks,
    orchestrator: WorkflowOrchestratorService = Depends(get_workflow_orchestrator_service),
) -> WorkflowRunAcceptedResponse:
    cache_strategy = CacheStrategy.REVALIDATE if payload.revalidate else CacheStrategy.STALE
    run_id = orchestrator.trigger_technical_research(
        executor=FastAPIBackgroundTaskExecutor(background_tasks),
        term=payload.term,
        cache_strategy=cache_strategy,
        run_id=payload.run_id,
    )
    return WorkflowRunAcceptedResponse(
        run_id=run_id,
        workflow_name=TECHNICAL_RESEARCH_WORKFLOW,
        term=payload.term,
        cache_strategy=cache_strategy.value,
    )


@router.get("/{run_id}", response_model=WorkflowRunStatusResponse)
def get_workflow_run(
    run_id: str,
    orchestrator: WorkflowOrchestratorService = Depends(get_workflow_orchestrator_service),
) -> WorkflowRunStatusResponse:
    steps = orchestrator.get_run_steps(run_id=run_id)
    if not steps:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow run not found: {run_id}",
        )
    return WorkflowRunStatusResponse(
        run_id=run_id,
        workflow_name=steps[0].workflow_name,
        status=summarize_run_status(steps),
        steps=[_to_step_response(step) for step in steps],
    )


def _to_step_response(step: StepRecord) -> WorkflowStepStatusResponse:
    return WorkflowStepStatusResponse(
        step_name=step.step_name,
        status=step.status,
        attempts=step.attempts,
        started_at=step.started_at,
        completed_at=step.completed_at,
        error_message=step.error,
        output=step.output,
    )
