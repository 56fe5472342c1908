"""
Company routes.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_lead_service
from models.schemas import CompanyCreate, CompanyUpdate, CompanyResponse, CompanyListResponse
from services import LeadService


router = APIRouter(prefix="/api/companies", tags=["companies"])


@router.get("", response_model=CompanyListResponse)
def list_companies(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    industry: Optional[str] = None,
    service: LeadService = Depends(get_lead_service)
):
    return service.list_companies(page=page, limit=limit, search=search, industry=industry)


@router.post("", response_model=CompanyResponse, status_code=201)
def create_company(data: CompanyCreate, service: LeadService = Depends(get_lead_service)):
    return service.create_company(data)


@router.get("/{company_id}")
def get_company(company_id: str, service: LeadService = Depends(get_lead_service)) -> Dict[str, Any]:
    """Company with its lead count."""
    return service.get_company(company_id)


@router.put("/{company_id}", response_model=CompanyResponse)
def update_company(company_id: str, data: CompanyUpdate, service: LeadService = Depends(get_lead_service)):
    return service.update_company(company_id, data)


@router.delete("/{company_id}", status_code=204)
def delete_company(company_id: str, service: LeadService = Depends(get_lead_service)):
    service.delete_company(company_id)
    return Response(status_code=204)
