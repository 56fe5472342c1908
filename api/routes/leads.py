"""
Lead routes: CRUD, scoring shortcut, interaction timeline and messages.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_lead_service, get_scoring_service
from models import PipelineStage, LeadSource
from models.schemas import (
    LeadCreate, LeadUpdate, LeadResponse, LeadListResponse,
    InteractionCreate, InteractionResponse, InboundMessageCreate, MessageResponse,
    ScoreLeadBody, LeadScoringResponse
)
from services import LeadService, ScoringService


router = APIRouter(prefix="/api/leads", tags=["leads"])


@router.get("/health/status")
def leads_health(service: LeadService = Depends(get_lead_service)) -> Dict[str, Any]:
    return service.get_health_status()


@router.get("", response_model=LeadListResponse)
def list_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    stage: Optional[PipelineStage] = None,
    source: Optional[LeadSource] = None,
    min_score: Optional[int] = Query(None, ge=0, le=100),
    max_score: Optional[int] = Query(None, ge=0, le=100),
    search: Optional[str] = None,
    service: LeadService = Depends(get_lead_service)
):
    """List leads with filters, newest first."""
    return service.list_leads(
        page=page,
        limit=limit,
        stage=stage,
        source=source,
        min_score=min_score,
        max_score=max_score,
        search=search
    )


@router.post("", response_model=LeadResponse, status_code=201)
def create_lead(data: LeadCreate, service: LeadService = Depends(get_lead_service)):
    return service.create_lead(data)


@router.get("/{lead_id}", response_model=LeadResponse)
def get_lead(lead_id: str, service: LeadService = Depends(get_lead_service)):
    return service.get_lead(lead_id)


@router.put("/{lead_id}", response_model=LeadResponse)
def update_lead(lead_id: str, data: LeadUpdate, service: LeadService = Depends(get_lead_service)):
    return service.update_lead(lead_id, data)


@router.delete("/{lead_id}", status_code=204)
def delete_lead(lead_id: str, service: LeadService = Depends(get_lead_service)):
    service.delete_lead(lead_id)
    return Response(status_code=204)


@router.post("/{lead_id}/score", response_model=LeadScoringResponse)
def score_lead(
    lead_id: str,
    body: ScoreLeadBody,
    service: ScoringService = Depends(get_scoring_service)
):
    """Score a lead against a scoring profile."""
    return service.score_lead(lead_id, body.profile_id, body.force_rescore)


@router.get("/{lead_id}/interactions", response_model=List[InteractionResponse])
def list_interactions(
    lead_id: str,
    limit: int = Query(50, ge=1, le=200),
    service: LeadService = Depends(get_lead_service)
):
    return service.list_interactions(lead_id, limit=limit)


@router.post("/{lead_id}/interactions", response_model=InteractionResponse, status_code=201)
def record_interaction(
    lead_id: str,
    data: InteractionCreate,
    service: LeadService = Depends(get_lead_service)
):
    return service.record_interaction(lead_id, data)


@router.get("/{lead_id}/messages", response_model=List[MessageResponse])
def list_messages(lead_id: str, service: LeadService = Depends(get_lead_service)):
    return service.list_messages(lead_id)


@router.post("/{lead_id}/messages", response_model=MessageResponse, status_code=201)
def record_inbound_message(
    lead_id: str,
    data: InboundMessageCreate,
    service: LeadService = Depends(get_lead_service)
):
    """Record a reply received from the lead."""
    return service.record_inbound_message(lead_id, data)
