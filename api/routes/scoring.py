"""
Scoring routes: lead scoring and scoring profile management.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Response

from api.dependencies import get_scoring_service
from models.schemas import (
    LeadScoringRequest, LeadScoringResponse,
    ScoringProfileCreate, ScoringProfileUpdate,
    ScoringProfileResponse, ScoringProfileListResponse
)
from services import ScoringService


router = APIRouter(prefix="/api/scoring", tags=["scoring"])


@router.post("/score", response_model=LeadScoringResponse)
def score_lead(request: LeadScoringRequest, service: ScoringService = Depends(get_scoring_service)):
    """
    Score a lead with Grok and the profile's weights and rules.

    Returns the stored score unchanged unless `force_rescore` is set or the
    lead has never been scored.
    """
    return service.score_lead(request.lead_id, request.profile_id, request.force_rescore)


@router.get("/profiles", response_model=ScoringProfileListResponse)
def list_profiles(service: ScoringService = Depends(get_scoring_service)):
    profiles = service.list_profiles()
    return {"profiles": profiles, "total": len(profiles)}


@router.post("/profiles", response_model=ScoringProfileResponse, status_code=201)
def create_profile(data: ScoringProfileCreate, service: ScoringService = Depends(get_scoring_service)):
    return service.create_profile(data)


@router.get("/profiles/{profile_id}", response_model=ScoringProfileResponse)
def get_profile(profile_id: str, service: ScoringService = Depends(get_scoring_service)):
    return service.get_profile(profile_id)


@router.put("/profiles/{profile_id}", response_model=ScoringProfileResponse)
def update_profile(
    profile_id: str,
    data: ScoringProfileUpdate,
    service: ScoringService = Depends(get_scoring_service)
):
    return service.update_profile(profile_id, data)


@router.delete("/profiles/{profile_id}", status_code=204)
def delete_profile(profile_id: str, service: ScoringService = Depends(get_scoring_service)):
    service.delete_profile(profile_id)
    return Response(status_code=204)


@router.get("/health/status")
def scoring_health(service: ScoringService = Depends(get_scoring_service)) -> Dict[str, Any]:
    return service.get_health_status()
