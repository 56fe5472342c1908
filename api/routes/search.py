"""
Search routes.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_search_service
from models.schemas import SearchResponse, SearchType, SortBy, SortOrder, SuggestionsResponse
from services import SearchService, ValidationError


router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("", response_model=SearchResponse)
def search(
    q: str = Query(..., min_length=1),
    type: SearchType = "all",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    filters: Optional[str] = Query(None, description="JSON object of extra filters"),
    sort_by: SortBy = "relevance",
    sort_order: SortOrder = "desc",
    service: SearchService = Depends(get_search_service)
):
    """Search leads, companies and interactions."""
    parsed_filters = {}
    if filters:
        try:
            parsed_filters = json.loads(filters)
        except json.JSONDecodeError:
            raise ValidationError("filters must be a JSON object")
        if not isinstance(parsed_filters, dict):
            raise ValidationError("filters must be a JSON object")

    return service.search(
        q,
        type=type,
        page=page,
        limit=limit,
        filters=parsed_filters,
        sort_by=sort_by,
        sort_order=sort_order
    )


@router.get("/suggestions", response_model=SuggestionsResponse)
def suggestions(q: Optional[str] = None, service: SearchService = Depends(get_search_service)):
    return {"suggestions": service.suggestions(q)}
