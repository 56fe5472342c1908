"""Data models and schemas."""

from models.entities import (
    Base, Company, Lead, MessageTemplate, ScoringProfile, Interaction,
    Message, EvalCase, EvalRun,
    PipelineStage, LeadSource, MessageDirection, MessageChannel,
    MessageStatus, EvalCategory
)

__all__ = [
    "Base", "Company", "Lead", "MessageTemplate", "ScoringProfile",
    "Interaction", "Message", "EvalCase", "EvalRun",
    "PipelineStage", "LeadSource", "MessageDirection", "MessageChannel",
    "MessageStatus", "EvalCategory"
]
