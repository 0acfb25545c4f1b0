"""
app/services package marker.
"""

from app.services.keyword_research_service import (
    KeywordResearchResult,
    KeywordResearchService,
    build_keyword_research_service,
    get_keyword_research_service,
)
from app.services.technical_research_service import (
    TechnicalResearchResult,
    TechnicalResearchService,
    build_technical_research_service,
    get_technical_research_service,
)
from app.services.workflow_orchestrator_service import (
    WorkflowOrchestratorService,
    get_workflow_orchestrator_service,
)

__all__ = [
    "KeywordResearchResult",
    "KeywordResearchService",
    "build_keyword_research_service",
    "get_keyword_research_service",
    "TechnicalResearchResult",
    "TechnicalResearchService",
    "build_technical_research_service",
    "get_technical_research_service",
    "WorkflowOrchestratorService",
    "get_workflow_orchestrator_service",
]
