"""
Schemas for LLM evaluation cases, runs and batch summaries.
"""

from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, List, Literal
from datetime import datetime

from models.entities import EvalCategory


ValidatorType = Literal["exact_match", "contains", "regex", "llm_judge", "custom"]


class EvalCriterion(BaseModel):
    """One graded aspect of an evaluation case."""
    name: str = Field(..., min_length=1)
    description: str = ""
    weight: float = Field(default=1.0, ge=0.0, le=1.0)
    validator: ValidatorType = "custom"
    pattern: Optional[str] = Field(None, description="Regex for the regex validator")


class EvalCaseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    category: EvalCategory
    input: Dict[str, Any]
    expected_output: Dict[str, Any]
    criteria: List[EvalCriterion] = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class EvalCaseResponse(BaseModel):
    id: str
    name: str
    description: str
    category: EvalCategory
    input: Dict[str, Any]
    expected_output: Dict[str, Any]
    criteria: List[EvalCriterion]
    metadata: Optional[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class EvalCaseListResponse(BaseModel):
    cases: List[EvalCaseResponse]
    total: int
    page: int
    limit: int


class EvalOptions(BaseModel):
    """Model settings applied to every case of a run."""
    model: Optional[str] = None
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, gt=0)


class EvalRunRequest(EvalOptions):
    """Run a stored case by id, or an inline case that is stored first."""
    case_id: Optional[str] = None
    case: Optional[EvalCaseCreate] = None


class EvalBatchRequest(EvalOptions):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    case_ids: List[str] = Field(..., min_length=1)


class CriterionScore(BaseModel):
    criterion: str
    score: float = Field(..., ge=0.0, le=1.0)
    passed: bool
    reasoning: str
    details: Optional[Dict[str, Any]] = None


class EvalRunResponse(BaseModel):
    id: str
    case_id: str
    case_name: str
    input: Dict[str, Any]
    expected_output: Dict[str, Any]
    actual_output: Any
    scores: List[CriterionScore]
    overall_score: float
    passed: bool
    duration_ms: int
    model_used: str
    prompt_used: str
    metadata: Optional[Dict[str, Any]]
    created_at: datetime


class EvalRunListResponse(BaseModel):
    runs: List[EvalRunResponse]
    total: int
    page: int
    limit: int


class CategoryStats(BaseModel):
    count: int
    average_score: float
    passed_count: int


class TopIssue(BaseModel):
    criterion: str
    failure_rate: float
    count: int


class EvalSummary(BaseModel):
    total_tests: int
    passed_tests: int
    failed_tests: int
    average_score: float
    scores_by_category: Dict[str, CategoryStats]
    top_issues: List[TopIssue]
    recommendations: List[str]


class EvalBatchResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    results: List[EvalRunResponse]
    summary: EvalSummary
    started_at: datetime
    completed_at: datetime
    status: Literal["completed", "failed"]
