"""
Evaluation routes: cases, single runs, batches and run history.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_eval_service
from models import EvalCategory
from models.eval_schemas import (
    EvalCaseCreate, EvalCaseResponse, EvalCaseListResponse,
    EvalRunRequest, EvalRunResponse, EvalRunListResponse,
    EvalBatchRequest, EvalBatchResponse, EvalOptions
)
from services import EvalService, ValidationError


router = APIRouter(prefix="/api/evals", tags=["evals"])


def _options(request: EvalOptions) -> EvalOptions:
    return EvalOptions(model=request.model, temperature=request.temperature, max_tokens=request.max_tokens)


@router.post("/run", response_model=EvalRunResponse)
def run_case(request: EvalRunRequest, service: EvalService = Depends(get_eval_service)):
    """Run a stored case, or store and run an inline one."""
    if request.case_id:
        case_id = request.case_id
    elif request.case:
        case_id = service.create_case(request.case)["id"]
    else:
        raise ValidationError("Either case_id or case is required")
    return service.run_case(case_id, _options(request))


@router.post("/batch", response_model=EvalBatchResponse)
def run_batch(request: EvalBatchRequest, service: EvalService = Depends(get_eval_service)):
    return service.run_batch(
        request.name,
        request.case_ids,
        options=_options(request),
        description=request.description
    )


@router.get("/runs", response_model=EvalRunListResponse)
def list_runs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    case_id: Optional[str] = None,
    service: EvalService = Depends(get_eval_service)
):
    return service.list_runs(page=page, limit=limit, case_id=case_id)


@router.get("/runs/{run_id}", response_model=EvalRunResponse)
def get_run(run_id: str, service: EvalService = Depends(get_eval_service)):
    return service.get_run(run_id)


@router.get("/cases", response_model=EvalCaseListResponse)
def list_cases(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[EvalCategory] = None,
    service: EvalService = Depends(get_eval_service)
):
    return service.list_cases(page=page, limit=limit, category=category)


@router.post("/cases", response_model=EvalCaseResponse, status_code=201)
def create_case(data: EvalCaseCreate, service: EvalService = Depends(get_eval_service)):
    return service.create_case(data)


@router.get("/cases/{case_id}", response_model=EvalCaseResponse)
def get_case(case_id: str, service: EvalService = Depends(get_eval_service)):
    return service.get_case(case_id)


@router.delete("/cases/{case_id}", status_code=204)
def delete_case(case_id: str, service: EvalService = Depends(get_eval_service)):
    service.delete_case(case_id)
    return Response(status_code=204)


@router.get("/health/status")
def evals_health(service: EvalService = Depends(get_eval_service)) -> Dict[str, Any]:
    return service.get_health_status()
