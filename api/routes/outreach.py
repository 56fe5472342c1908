"""
Outreach routes: previews, sending and message templates.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Response

from api.dependencies import get_outreach_service
from models.schemas import (
    OutreachPreviewRequest, OutreachPreviewResponse,
    OutreachSendRequest, OutreachSendResponse,
    MessageTemplateCreate, MessageTemplateUpdate,
    MessageTemplateResponse, MessageTemplateListResponse
)
from services import OutreachService


router = APIRouter(prefix="/api/outreach", tags=["outreach"])


@router.post("/preview", response_model=OutreachPreviewResponse)
def preview_outreach(request: OutreachPreviewRequest, service: OutreachService = Depends(get_outreach_service)):
    return service.generate_preview(request.lead_id, request.template_id, request.custom_variables)


@router.post("/send", response_model=OutreachSendResponse)
def send_outreach(request: OutreachSendRequest, service: OutreachService = Depends(get_outreach_service)):
    """Generate a message and record it as sent. No external delivery happens."""
    return service.send_outreach(
        request.lead_id,
        request.template_id,
        channel=request.channel,
        custom_variables=request.custom_variables
    )


@router.get("/templates", response_model=MessageTemplateListResponse)
def list_templates(service: OutreachService = Depends(get_outreach_service)):
    return {"templates": service.list_templates()}


@router.post("/templates", response_model=MessageTemplateResponse, status_code=201)
def create_template(data: MessageTemplateCreate, service: OutreachService = Depends(get_outreach_service)):
    return service.create_template(data)


@router.get("/templates/{template_id}", response_model=MessageTemplateResponse)
def get_template(template_id: str, service: OutreachService = Depends(get_outreach_service)):
    return service.get_template(template_id)


@router.put("/templates/{template_id}", response_model=MessageTemplateResponse)
def update_template(
    template_id: str,
    data: MessageTemplateUpdate,
    service: OutreachService = Depends(get_outreach_service)
):
    return service.update_template(template_id, data)


@router.delete("/templates/{template_id}", status_code=204)
def delete_template(template_id: str, service: OutreachService = Depends(get_outreach_service)):
    service.delete_template(template_id)
    return Response(status_code=204)


@router.get("/health/status")
def outreach_health(service: OutreachService = Depends(get_outreach_service)) -> Dict[str, Any]:
    return service.get_health_status()
