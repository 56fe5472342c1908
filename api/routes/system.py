"""
Service-level routes: health check and dashboard metrics.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_store, get_grok
from integrations import GrokClient
from models.schemas import HealthResponse
from services import get_dashboard_metrics
from storage import CRMStore


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check(store: CRMStore = Depends(get_store)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if store.ping() else "degraded",
        version="1.0.0"
    )


@router.get("/api/dashboard/metrics")
def dashboard_metrics(
    store: CRMStore = Depends(get_store),
    grok: Optional[GrokClient] = Depends(get_grok)
) -> Dict[str, Any]:
    metrics = get_dashboard_metrics(store)
    metrics["grok_client"] = grok.get_usage_stats() if grok else None
    return metrics
