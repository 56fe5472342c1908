"""
Pydantic schemas for API requests and responses.
"""

from pydantic import BaseModel, EmailStr, Field, HttpUrl, ValidationInfo, field_validator, model_validator
from typing import Dict, Any, Optional, List, Literal
from datetime import datetime, timezone

from models.entities import (
    PipelineStage, LeadSource, MessageChannel, MessageDirection, MessageStatus
)


def reject_null(value, info: ValidationInfo):
    """Partial updates may omit a required column but not clear it."""
    if value is None:
        raise ValueError(f"{info.field_name} cannot be null")
    return value


# Companies

class CompanyCreate(BaseModel):
    """Company payload, standalone or nested in a lead."""
    name: str = Field(..., min_length=1, max_length=100, description="Company name")
    domain: Optional[str] = Field(None, max_length=100, description="Unique company domain")
    size: Optional[int] = Field(None, gt=0, description="Employee count")
    industry: Optional[str] = Field(None, max_length=100)


class CompanyUpdate(BaseModel):
    """Partial company update."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    domain: Optional[str] = Field(None, max_length=100)
    size: Optional[int] = Field(None, gt=0)
    industry: Optional[str] = Field(None, max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value, info: ValidationInfo):
        return reject_null(value, info)


class CompanyResponse(BaseModel):
    id: str
    name: str
    domain: Optional[str]
    size: Optional[int]
    industry: Optional[str]
    created_at: datetime
    updated_at: datetime


class CompanyListResponse(BaseModel):
    companies: List[CompanyResponse]
    total: int
    page: int
    limit: int


# Leads

class LeadBase(BaseModel):
    title: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = Field(None, description="Lead email address")
    linkedin_url: Optional[HttpUrl] = None
    website_url: Optional[HttpUrl] = None
    source: Optional[LeadSource] = None
    notes: Optional[str] = Field(None, max_length=1000)
    metadata: Optional[Dict[str, Any]] = None


class LeadCreate(LeadBase):
    """Create a lead with an optional nested or referenced company."""
    full_name: str = Field(..., min_length=1, max_length=100, description="Lead full name")
    company: Optional[CompanyCreate] = None
    company_id: Optional[str] = None


class LeadUpdate(LeadBase):
    """Partial lead update."""
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    company: Optional[CompanyUpdate] = None
    company_id: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def full_name_not_null(cls, value, info: ValidationInfo):
        return reject_null(value, info)


class LeadResponse(BaseModel):
    """Lead with its company."""
    id: str
    company_id: Optional[str]
    company: Optional[CompanyResponse]
    full_name: str
    title: Optional[str]
    email: Optional[str]
    linkedin_url: Optional[str]
    website_url: Optional[str]
    source: Optional[str]
    score: int = Field(..., ge=0, le=100)
    score_breakdown: Optional[Dict[str, Any]]
    stage: PipelineStage
    notes: Optional[str]
    metadata: Optional[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class LeadListResponse(BaseModel):
    leads: List[LeadResponse]
    total: int
    page: int
    limit: int


# Interactions and messages

class InteractionCreate(BaseModel):
    """Manually recorded timeline event (e.g. meeting, meeting_outcome, call)."""
    type: str = Field(..., min_length=1, max_length=100)
    payload: Dict[str, Any] = Field(default_factory=dict)


class InteractionResponse(BaseModel):
    id: str
    lead_id: str
    type: str
    payload: Optional[Dict[str, Any]]
    created_at: datetime


class InboundMessageCreate(BaseModel):
    """Reply received from a lead."""
    channel: MessageChannel = MessageChannel.EMAIL
    subject: Optional[str] = Field(None, max_length=500)
    body: str = Field(..., min_length=1, max_length=10000)
    meta: Optional[Dict[str, Any]] = None


class MessageResponse(BaseModel):
    id: str
    lead_id: str
    direction: MessageDirection
    channel: MessageChannel
    subject: Optional[str]
    body: str
    status: MessageStatus
    meta: Optional[Dict[str, Any]]
    created_at: datetime


# Scoring

class ScoringWeights(BaseModel):
    """Factor weights; must sum to 1.0."""
    industry_fit: float = Field(default=0.3, ge=0.0, le=1.0)
    size_fit: float = Field(default=0.2, ge=0.0, le=1.0)
    title_fit: float = Field(default=0.3, ge=0.0, le=1.0)
    tech_signals: float = Field(default=0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_sum(self):
        total = self.industry_fit + self.size_fit + self.title_fit + self.tech_signals
        if abs(total - 1.0) >= 0.01:
            raise ValueError("Weights must sum to 1.0")
        return self


class ScoringRules(BaseModel):
    """String rules evaluated against a lead."""
    must_have: Optional[List[str]] = None
    preferred: Optional[List[str]] = None
    disqualifiers: Optional[List[str]] = None
    custom_rules: Optional[Dict[str, Any]] = None


class ScoringProfileCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    weights: ScoringWeights
    rules: Optional[ScoringRules] = None


class ScoringProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    weights: Optional[ScoringWeights] = None
    rules: Optional[ScoringRules] = None


class ScoringProfileResponse(BaseModel):
    id: str
    name: str
    weights: Dict[str, float]
    rules: Optional[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class ScoringProfileListResponse(BaseModel):
    profiles: List[ScoringProfileResponse]
    total: int


class ScoreLeadBody(BaseModel):
    """Body of POST /api/leads/{id}/score."""
    profile_id: str
    force_rescore: bool = False


class LeadScoringRequest(ScoreLeadBody):
    lead_id: str


class ScoringFactors(BaseModel):
    industry_fit: float = Field(..., ge=0, le=100)
    size_fit: float = Field(..., ge=0, le=100)
    title_fit: float = Field(..., ge=0, le=100)
    tech_signals: float = Field(..., ge=0, le=100)


class LeadScoringResponse(BaseModel):
    lead_id: str
    score: int = Field(..., ge=0, le=100)
    factors: ScoringFactors
    rationale: str
    profile_used: str
    scored_at: datetime
    confidence: float = Field(..., ge=0.0, le=1.0)
    fallback: bool = Field(default=False, description="AI scoring failed; placeholder factors used")


# Outreach

class MessageTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    body: str = Field(..., min_length=1, max_length=2000)


class MessageTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    body: Optional[str] = Field(None, min_length=1, max_length=2000)

    @field_validator("name", "body")
    @classmethod
    def fields_not_null(cls, value, info: ValidationInfo):
        return reject_null(value, info)


class MessageTemplateResponse(BaseModel):
    id: str
    name: str
    body: str
    created_at: datetime
    updated_at: datetime


class MessageTemplateListResponse(BaseModel):
    templates: List[MessageTemplateResponse]


class OutreachPreviewRequest(BaseModel):
    lead_id: str
    template_id: str
    custom_variables: Optional[Dict[str, str]] = None


class OutreachSendRequest(OutreachPreviewRequest):
    channel: MessageChannel = MessageChannel.EMAIL


class SafetyCheck(BaseModel):
    pii_leak: bool
    hallucination_risk: Literal["low", "med", "high"]


class OutreachPreviewResponse(BaseModel):
    subject: str
    body: str
    safety: SafetyCheck
    word_count: int = Field(..., ge=0)
    variables: Dict[str, str]
    fallback: bool = False


class OutreachSendResponse(BaseModel):
    message_id: str
    status: MessageStatus
    sent_at: datetime
    channel: MessageChannel
    subject: Optional[str]
    body: str


# Pipeline

class StageAdvanceRequest(BaseModel):
    target_stage: PipelineStage
    reason: Optional[str] = Field(None, max_length=500)


class StageAdvanceResponse(BaseModel):
    message: str
    lead_id: str
    previous_stage: PipelineStage
    stage: PipelineStage
    updated_at: datetime


class AutoAdvanceResponse(BaseModel):
    lead_id: str
    advanced: bool
    stage: PipelineStage


# Search

SearchType = Literal["leads", "companies", "interactions", "all"]
SortBy = Literal["relevance", "date", "score", "name", "size", "type"]
SortOrder = Literal["asc", "desc"]


class SearchFilters(BaseModel):
    """Optional per-type filters; keys for other result types are ignored."""
    # Leads
    stage: Optional[PipelineStage] = None
    source: Optional[LeadSource] = None
    min_score: Optional[int] = Field(None, ge=0, le=100)
    max_score: Optional[int] = Field(None, ge=0, le=100)
    # Companies
    industry: Optional[str] = None
    min_size: Optional[int] = Field(None, ge=0)
    max_size: Optional[int] = Field(None, ge=0)
    # Interactions
    type: Optional[str] = None
    lead_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class SearchResponse(BaseModel):
    type: SearchType
    query: str
    results: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    breakdown: Optional[Dict[str, int]] = None


class Suggestion(BaseModel):
    type: Literal["lead", "company"]
    text: str
    subtitle: Optional[str] = None


class SuggestionsResponse(BaseModel):
    suggestions: List[Suggestion]


# Service status

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(default="healthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = Field(default="1.0.0")


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
    trace_id: Optional[str] = None
