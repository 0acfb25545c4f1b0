"""
Schemas for workflow trigger and status endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ResearchTermRequest(BaseModel):
    term: str = Field(min_length=1, max_length=255)
    revalidate: bool = Field(default=False, description="Ignore cached resources")
    run_id: str | None = Field(default=None, max_length=64, description="Resume an earlier run")

    @field_validator("term")
    @classmethod
    def _strip_term(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("term must not be blank")
        return stripped


class KeywordResearchRequest(ResearchTermRequest):
    pass


class TechnicalResearchRequest(ResearchTermRequest):
    pass


class WorkflowRunAcceptedResponse(BaseModel):
    run_id: str
    workflow_name: str
    term: str
    cache_strategy: str


class WorkflowStepStatusResponse(BaseModel):
    step_name: str
    status: str
    attempts: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    output: Any = None


class WorkflowRunStatusResponse(BaseModel):
    run_id: str
    workflow_name: str
    status: str
    steps: list[WorkflowStepStatusResponse] = Field(default_factory=list)
