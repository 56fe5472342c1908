"""
SQLAlchemy models for the CRM.
Represents companies, leads, outreach, scoring profiles and eval records.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, JSON, ForeignKey, Enum
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class PipelineStage(str, PyEnum):
    """Pipeline stage enum."""
    NEW = "NEW"
    QUALIFIED = "QUALIFIED"
    OUTREACH = "OUTREACH"
    REPLIED = "REPLIED"
    MEETING_SCHEDULED = "MEETING_SCHEDULED"
    WON = "WON"
    LOST = "LOST"


class LeadSource(str, PyEnum):
    """Lead source enum."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    UPLOAD = "upload"


class MessageDirection(str, PyEnum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageChannel(str, PyEnum):
    EMAIL = "email"
    LINKEDIN = "linkedin"


class MessageStatus(str, PyEnum):
    DRAFT = "draft"
    SENT = "sent"
    FAILED = "failed"
    RECEIVED = "received"


class EvalCategory(str, PyEnum):
    SCORING = "scoring"
    OUTREACH = "outreach"
    QUALIFICATION = "qualification"
    GENERAL = "general"


class Company(Base):
    """Company a lead works for."""

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, index=True)
    domain = Column(String(255), unique=True)
    size = Column(Integer)
    industry = Column(String(255))

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    # Relationships
    leads = relationship("Lead", back_populates="company")

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "size": self.size,
            "industry": self.industry,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Lead(Base):
    """Lead model representing a sales prospect."""

    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="SET NULL"),
        index=True
    )
    full_name = Column(String(255), nullable=False)
    title = Column(String(255))
    email = Column(String(255), unique=True, index=True)
    linkedin_url = Column(String(500))
    website_url = Column(String(500))
    source = Column(Enum(LeadSource), default=LeadSource.UPLOAD)

    # Qualification scoring
    score = Column(Integer, default=0, nullable=False, index=True)
    score_breakdown = Column(JSON)

    stage = Column(
        Enum(PipelineStage),
        default=PipelineStage.NEW,
        nullable=False,
        index=True
    )
    notes = Column(Text)

    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, default=dict)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    # Relationships
    company = relationship("Company", back_populates="leads", lazy="joined")
    interactions = relationship(
        "Interaction",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="Interaction.created_at.desc()"
    )
    messages = relationship(
        "Message",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="Message.created_at.desc()"
    )

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "company_id": self.company_id,
            "company": self.company.to_dict() if self.company else None,
            "full_name": self.full_name,
            "title": self.title,
            "email": self.email,
            "linkedin_url": self.linkedin_url,
            "website_url": self.website_url,
            "source": self.source.value if self.source else None,
            "score": self.score,
            "score_breakdown": self.score_breakdown,
            "stage": self.stage.value if self.stage else None,
            "notes": self.notes,
            "metadata": self.metadata_,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class MessageTemplate(Base):
    """Outreach template with {{variable}} placeholders."""

    __tablename__ = "message_templates"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "body": self.body,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ScoringProfile(Base):
    """Named set of weighting factors and qualification rules."""

    __tablename__ = "scoring_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    weights = Column(JSON, nullable=False)
    rules = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "weights": self.weights,
            "rules": self.rules,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Interaction(Base):
    """Timeline event recorded against a lead."""

    __tablename__ = "interactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(
        String(36),
        ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    type = Column(String(100), nullable=False, index=True)  # lead_scored, outreach_sent, stage_advanced, meeting, ...
    payload = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False, index=True)

    # Relationships
    lead = relationship("Lead", back_populates="interactions")

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "type": self.type,
            "payload": self.payload,
            "created_at": _iso(self.created_at),
        }


class Message(Base):
    """Inbound or outbound message exchanged with a lead."""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(
        String(36),
        ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    direction = Column(Enum(MessageDirection), nullable=False)
    channel = Column(Enum(MessageChannel), nullable=False)
    subject = Column(String(500))
    body = Column(Text, nullable=False)
    status = Column(Enum(MessageStatus), nullable=False)
    meta = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False, index=True)

    # Relationships
    lead = relationship("Lead", back_populates="messages")

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "direction": self.direction.value,
            "channel": self.channel.value,
            "subject": self.subject,
            "body": self.body,
            "status": self.status.value,
            "meta": self.meta,
            "created_at": _iso(self.created_at),
        }


class EvalCase(Base):
    """Evaluation test case for LLM outputs."""

    __tablename__ = "eval_cases"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(Enum(EvalCategory), nullable=False, index=True)
    input = Column(JSON, nullable=False)
    expected_output = Column(JSON, nullable=False)
    criteria = Column(JSON, nullable=False)
    metadata_ = Column("metadata", JSON)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    # Relationships
    runs = relationship("EvalRun", back_populates="case", cascade="all, delete-orphan")

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "input": self.input,
            "expected_output": self.expected_output,
            "criteria": self.criteria,
            "metadata": self.metadata_,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class EvalRun(Base):
    """Result of running one evaluation case."""

    __tablename__ = "eval_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    case_id = Column(
        String(36),
        ForeignKey("eval_cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    case_name = Column(String(255), nullable=False)
    input = Column(JSON, nullable=False)
    expected_output = Column(JSON, nullable=False)
    actual_output = Column(JSON, nullable=False)
    scores = Column(JSON, nullable=False)
    overall_score = Column(Float, nullable=False)
    passed = Column(Boolean, nullable=False)
    duration_ms = Column(Integer, nullable=False)
    model_used = Column(String(100), nullable=False)
    prompt_used = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSON)

    created_at = Column(DateTime(timezone=True), default=_now, nullable=False, index=True)

    # Relationships
    case = relationship("EvalCase", back_populates="runs")

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "case_id": self.case_id,
            "case_name": self.case_name,
            "input": self.input,
            "expected_output": self.expected_output,
            "actual_output": self.actual_output,
            "scores": self.scores,
            "overall_score": self.overall_score,
            "passed": self.passed,
            "duration_ms": self.duration_ms,
            "model_used": self.model_used,
            "prompt_used": self.prompt_used,
            "metadata": self.metadata_,
            "created_at": _iso(self.created_at),
        }
