"""Business services over the CRM store."""

from services.errors import (
    CRMError, NotFoundError, ValidationError, InvalidStageTransitionError, ConflictError
)
from services.lead_service import LeadService
from services.scoring_service import ScoringService
from services.outreach_service import OutreachService
from services.pipeline_service import PipelineService
from services.search_service import SearchService
from services.eval_service import EvalService
from services.dashboard_service import get_dashboard_metrics

__all__ = [
    "CRMError", "NotFoundError", "ValidationError", "InvalidStageTransitionError", "ConflictError",
    "LeadService", "ScoringService", "OutreachService", "PipelineService",
    "SearchService", "EvalService", "get_dashboard_metrics"
]
