"""
FastAPI dependency providers.
Tests replace `get_store` and `get_grok` through `app.dependency_overrides`.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from integrations import GrokClient, GrokConfigurationError, get_grok_client
from observability import trace_logger
from services import (
    LeadService, ScoringService, OutreachService, PipelineService,
    SearchService, EvalService
)
from storage import CRMStore


@lru_cache
def get_store() -> CRMStore:
    return CRMStore()


@lru_cache
def get_grok() -> Optional[GrokClient]:
    """Shared Grok client, or None when no API key is configured. Resolved once per process."""
    try:
        return get_grok_client()
    except GrokConfigurationError as e:
        trace_logger.warning("Grok client unavailable, AI features use fallbacks", reason=str(e))
        return None


def get_lead_service(store: CRMStore = Depends(get_store)) -> LeadService:
    return LeadService(store)


def get_scoring_service(
    store: CRMStore = Depends(get_store),
    grok: Optional[GrokClient] = Depends(get_grok)
) -> ScoringService:
    return ScoringService(store, grok)


def get_outreach_service(
    store: CRMStore = Depends(get_store),
    grok: Optional[GrokClient] = Depends(get_grok)
) -> OutreachService:
    return OutreachService(store, grok)


def get_pipeline_service(store: CRMStore = Depends(get_store)) -> PipelineService:
    return PipelineService(store)


def get_search_service(store: CRMStore = Depends(get_store)) -> SearchService:
    return SearchService(store)


def get_eval_service(
    store: CRMStore = Depends(get_store),
    grok: Optional[GrokClient] = Depends(get_grok)
) -> EvalService:
    return EvalService(store, grok)
