"""
app/schemas package marker.
"""

from app.schemas.workflows import (
    KeywordResearchRequest,
    ResearchTermRequest,
    TechnicalResearchRequest,
    WorkflowRunAcceptedResponse,
    WorkflowRunStatusResponse,
    WorkflowStepStatusResponse,
)

__all__ = [
    "KeywordResearchRequest",
    "ResearchTermRequest",
    "TechnicalResearchRequest",
    "WorkflowRunAcceptedResponse",
    "WorkflowRunStatusResponse",
    "WorkflowStepStatusResponse",
]
