"""
Outreach generation.
Template substitution, Grok-written drafts, safety checks and simulated sending.
"""

import re
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from integrations import GrokClient, GrokClientError
from models import (
    Lead, MessageTemplate, Message, Interaction,
    MessageDirection, MessageChannel, MessageStatus
)
from models.schemas import MessageTemplateCreate, MessageTemplateUpdate
from observability import trace_logger
from services.errors import NotFoundError
from services.prompts import (
    OUTREACH_PROMPT, OUTREACH_SYSTEM_PROMPT,
    render_prompt, messages_for, lead_context
)
from storage import CRMStore


PII_PATTERNS = [
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),  # SSN
    re.compile(r"\b\d{10,11}\b"),  # phone
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),  # email
]

_VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")


def substitute_template(
    body: str,
    lead: Dict[str, Any],
    custom_variables: Optional[Dict[str, str]] = None
) -> str:
    """Replace standard {{placeholders}} with lead data, then custom variables."""
    company = lead.get("company") or {}
    full_name = lead.get("full_name") or ""
    size = company.get("size")

    standard = {
        "firstName": full_name.split(" ")[0] or full_name,
        "fullName": full_name,
        "title": lead.get("title") or "there",
        "companyName": company.get("name") or "your company",
        "industry": company.get("industry") or "your industry",
        "size": str(size) if size is not None else "your company size",
    }

    processed = body
    for name, value in standard.items():
        processed = processed.replace("{{" + name + "}}", value)
    for name, value in (custom_variables or {}).items():
        processed = processed.replace("{{" + name + "}}", value)
    return processed


def extract_variables(body: str) -> Dict[str, str]:
    return {name: "" for name in _VARIABLE_RE.findall(body)}


def count_words(text: str) -> int:
    return len(text.split())


def check_safety(subject: str, body: str, lead: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flag PII in the draft and estimate hallucination risk.

    Risk is based on how many known lead facts the draft actually mentions:
    under half is high, under 80% is med, otherwise low.
    """
    pii_leak = any(
        pattern.search(subject) or pattern.search(body)
        for pattern in PII_PATTERNS
    )

    company = lead.get("company") or {}
    size = company.get("size")
    facts = [
        lead.get("full_name"),
        lead.get("title"),
        company.get("name"),
        company.get("industry"),
        str(size) if size is not None else None,
        lead.get("source"),
    ]
    facts = [fact for fact in facts if fact]

    text = f"{subject} {body}".lower()
    mentioned = [fact for fact in facts if fact.lower() in text]
    ratio = len(mentioned) / len(facts) if facts else 1.0

    if ratio < 0.5:
        risk = "high"
    elif ratio < 0.8:
        risk = "med"
    else:
        risk = "low"

    trace_logger.debug(
        "Message safety validation completed",
        pii_leak=pii_leak,
        hallucination_risk=risk,
        fact_count=len(facts),
        mentioned_count=len(mentioned)
    )
    return {"pii_leak": pii_leak, "hallucination_risk": risk}


def fallback_message(lead: Dict[str, Any]) -> Dict[str, str]:
    company = lead.get("company") or {}
    return {
        "subject": "Follow up",
        "body": (
            f"Hi {lead.get('full_name')},\n\n"
            "I wanted to follow up on our previous conversation. "
            "Would you be interested in a quick call to discuss how we can help "
            f"{company.get('name') or 'your company'}?\n\nBest regards"
        ),
    }


class OutreachService:
    """Message templates and personalized outreach."""

    def __init__(self, store: CRMStore, grok_client: Optional[GrokClient] = None):
        self.store = store
        self.grok_client = grok_client

    # Templates

    def create_template(self, data: MessageTemplateCreate) -> Dict[str, Any]:
        with self.store.get_session() as session:
            template = MessageTemplate(name=data.name, body=data.body)
            session.add(template)
            session.flush()
            result = template.to_dict()

        trace_logger.record_changed(
            entity="message_template",
            entity_id=result["id"],
            operation="create",
            body_length=len(data.body)
        )
        return result

    def list_templates(self) -> List[Dict[str, Any]]:
        with self.store.get_session() as session:
            templates = session.query(MessageTemplate).order_by(MessageTemplate.created_at.desc()).all()
            return [template.to_dict() for template in templates]

    def get_template(self, template_id: str) -> Dict[str, Any]:
        with self.store.get_session() as session:
            return self._get_template(session, template_id).to_dict()

    def update_template(self, template_id: str, data: MessageTemplateUpdate) -> Dict[str, Any]:
        with self.store.get_session() as session:
            template = self._get_template(session, template_id)
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(template, key, value)
            session.flush()
            result = template.to_dict()

        trace_logger.record_changed(entity="message_template", entity_id=template_id, operation="update")
        return result

    def delete_template(self, template_id: str):
        with self.store.get_session() as session:
            session.delete(self._get_template(session, template_id))

        trace_logger.record_changed(entity="message_template", entity_id=template_id, operation="delete")

    # Outreach

    def generate_preview(
        self,
        lead_id: str,
        template_id: str,
        custom_variables: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Draft a personalized message for a lead from a template."""
        start = time.perf_counter()
        trace_logger.info("Generating outreach preview", lead_id=lead_id, template_id=template_id)

        with self.store.get_session() as session:
            lead = session.query(Lead).filter(Lead.id == lead_id).first()
            if not lead:
                raise NotFoundError("Lead", lead_id)
            lead_dict = lead.to_dict()
            template_dict = self._get_template(session, template_id).to_dict()

        draft = self._ai_message(lead_dict, template_dict, custom_variables)
        safety = check_safety(draft["subject"], draft["body"], lead_dict)
        word_count = count_words(draft["body"])

        trace_logger.info(
            "Outreach preview generated",
            lead_id=lead_id,
            template_id=template_id,
            word_count=word_count,
            safety=safety,
            fallback=draft["fallback"],
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )

        return {
            "subject": draft["subject"],
            "body": draft["body"],
            "safety": safety,
            "word_count": word_count,
            "variables": extract_variables(template_dict["body"]),
            "fallback": draft["fallback"],
        }

    def send_outreach(
        self,
        lead_id: str,
        template_id: str,
        channel: MessageChannel = MessageChannel.EMAIL,
        custom_variables: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Generate and record an outbound message. Delivery is simulated."""
        preview = self.generate_preview(lead_id, template_id, custom_variables)
        channel = MessageChannel(channel)
        sent_at = datetime.now(timezone.utc)

        with self.store.get_session() as session:
            message = Message(
                lead_id=lead_id,
                direction=MessageDirection.OUTBOUND,
                channel=channel,
                subject=preview["subject"],
                body=preview["body"],
                status=MessageStatus.SENT,
                meta={
                    "template_id": template_id,
                    "custom_variables": custom_variables,
                    "safety": preview["safety"],
                    "word_count": preview["word_count"],
                    "sent_at": sent_at.isoformat(),
                }
            )
            session.add(message)
            session.flush()

            session.add(Interaction(
                lead_id=lead_id,
                type="outreach_sent",
                payload={
                    "message_id": message.id,
                    "template_id": template_id,
                    "channel": channel.value,
                    "subject": preview["subject"],
                    "word_count": preview["word_count"],
                    "safety": preview["safety"],
                    "sent_at": sent_at.isoformat(),
                }
            ))
            message_id = message.id

        trace_logger.record_changed(
            entity="message",
            entity_id=message_id,
            operation="create",
            lead_id=lead_id,
            direction="outbound",
            channel=channel.value
        )

        return {
            "message_id": message_id,
            "status": MessageStatus.SENT,
            "sent_at": sent_at,
            "channel": channel,
            "subject": preview["subject"],
            "body": preview["body"],
        }

    def get_health_status(self) -> Dict[str, Any]:
        with self.store.get_session() as session:
            template_count = session.query(MessageTemplate).count()
            message_count = session.query(Message).count()
        return {
            "status": "healthy",
            "template_count": template_count,
            "message_count": message_count,
            "grok_client": self.grok_client.get_usage_stats() if self.grok_client else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _ai_message(
        self,
        lead_dict: Dict[str, Any],
        template_dict: Dict[str, Any],
        custom_variables: Optional[Dict[str, str]]
    ) -> Dict[str, Any]:
        processed = substitute_template(template_dict["body"], lead_dict, custom_variables)
        prompt = render_prompt(
            OUTREACH_PROMPT,
            lead=lead_context(lead_dict),
            templateBody=processed
        )

        try:
            if self.grok_client is None:
                raise GrokClientError("Grok client is not configured")
            response = self.grok_client.chat_json(
                messages_for(OUTREACH_SYSTEM_PROMPT, prompt),
                temperature=0.3,
                max_tokens=300
            )
            if not isinstance(response, dict) or not response.get("body"):
                raise GrokClientError("Outreach response is missing a body")
        except GrokClientError as e:
            trace_logger.error_occurred(
                error_type="ai_outreach_error",
                error_message=str(e),
                context={"lead_id": lead_dict["id"], "template_id": template_dict["id"]}
            )
            return {**fallback_message(lead_dict), "fallback": True}

        return {
            "subject": str(response.get("subject") or "Follow up"),
            "body": str(response["body"]),
            "fallback": False,
        }

    def _get_template(self, session, template_id: str) -> MessageTemplate:
        template = session.query(MessageTemplate).filter(MessageTemplate.id == template_id).first()
        if not template:
            raise NotFoundError("Message template", template_id)
        return template
