"""
Pipeline routes: stage transitions, auto-advancement, analytics and board.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_pipeline_service
from models import PipelineStage
from models.schemas import (
    StageAdvanceRequest, StageAdvanceResponse, AutoAdvanceResponse, LeadListResponse
)
from services import PipelineService


router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


@router.get("/analytics")
def pipeline_analytics(service: PipelineService = Depends(get_pipeline_service)) -> Dict[str, Any]:
    return service.get_analytics()


@router.get("/board")
def pipeline_board(
    per_stage: int = Query(50, ge=1, le=200),
    service: PipelineService = Depends(get_pipeline_service)
) -> Dict[str, List[Dict[str, Any]]]:
    return service.get_board(per_stage=per_stage)


@router.get("/stage/{stage}", response_model=LeadListResponse)
def leads_by_stage(
    stage: PipelineStage,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: PipelineService = Depends(get_pipeline_service)
):
    return service.get_leads_by_stage(stage, page=page, limit=limit)


@router.get("/health/status")
def pipeline_health(service: PipelineService = Depends(get_pipeline_service)) -> Dict[str, Any]:
    return service.get_health_status()


@router.post("/{lead_id}/advance", response_model=StageAdvanceResponse)
def advance_lead(
    lead_id: str,
    request: StageAdvanceRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Move a lead to the next stage or LOST. Other transitions are rejected with 400."""
    return service.advance_lead(lead_id, request.target_stage, request.reason)


@router.post("/{lead_id}/check-auto-advancement", response_model=AutoAdvanceResponse)
def check_auto_advancement(lead_id: str, service: PipelineService = Depends(get_pipeline_service)):
    return service.check_auto_advancement(lead_id)
