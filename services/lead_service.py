"""
Lead and company management.
CRUD with nested company handling, the interaction timeline and inbound messages.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy import or_, func

from models import (
    Company, Lead, Interaction, Message,
    PipelineStage, LeadSource, MessageDirection, MessageChannel, MessageStatus
)
from models.schemas import (
    LeadCreate, LeadUpdate, CompanyCreate, CompanyUpdate,
    InteractionCreate, InboundMessageCreate
)
from observability import trace_logger
from services.errors import NotFoundError, ConflictError, ValidationError
from storage import CRMStore


_LEAD_URL_FIELDS = ("linkedin_url", "website_url")


def _lead_columns(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map validated request fields onto Lead columns."""
    columns = {}
    for key, value in data.items():
        if key in ("company", "company_id"):
            continue
        if key == "metadata":
            columns["metadata_"] = value
        elif key in _LEAD_URL_FIELDS and value is not None:
            columns[key] = str(value)
        elif key == "source" and value is not None:
            columns[key] = LeadSource(value)
        else:
            columns[key] = value
    return columns


class LeadService:
    """Leads, companies and their timelines."""

    def __init__(self, store: CRMStore):
        self.store = store

    # Leads

    def create_lead(self, data: LeadCreate) -> Dict[str, Any]:
        """Create a lead, upserting or referencing its company."""
        start = time.perf_counter()
        trace_logger.info(
            "Creating lead",
            full_name=data.full_name,
            company_name=data.company.name if data.company else None
        )

        with self.store.get_session() as session:
            if data.email:
                self._ensure_email_free(session, str(data.email))

            company_id = None
            if data.company:
                company_id = self._upsert_company(session, data.company).id
            elif data.company_id:
                company_id = self._get_company(session, data.company_id).id

            fields = data.model_dump(exclude_unset=True)
            lead = Lead(**_lead_columns(fields))
            lead.company_id = company_id
            lead.score = 0
            lead.stage = PipelineStage.NEW
            if lead.source is None:
                lead.source = LeadSource.UPLOAD
            if data.email:
                lead.email = str(data.email)
            session.add(lead)
            session.flush()
            session.refresh(lead)
            result = lead.to_dict()

        trace_logger.record_changed(
            entity="lead",
            entity_id=result["id"],
            operation="create",
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )
        return result

    def get_lead(self, lead_id: str) -> Dict[str, Any]:
        with self.store.get_session() as session:
            return self._get_lead(session, lead_id).to_dict()

    def list_leads(
        self,
        page: int = 1,
        limit: int = 20,
        stage: Optional[PipelineStage] = None,
        source: Optional[LeadSource] = None,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        """Filtered, paginated lead listing, newest first."""
        with self.store.get_session() as session:
            query = session.query(Lead)

            if stage:
                query = query.filter(Lead.stage == PipelineStage(stage))
            if source:
                query = query.filter(Lead.source == LeadSource(source))
            if min_score is not None:
                query = query.filter(Lead.score >= min_score)
            if max_score is not None:
                query = query.filter(Lead.score <= max_score)
            if search:
                pattern = f"%{search}%"
                query = query.outerjoin(Company, Lead.company_id == Company.id).filter(
                    or_(
                        Lead.full_name.ilike(pattern),
                        Lead.title.ilike(pattern),
                        Lead.email.ilike(pattern),
                        Company.name.ilike(pattern),
                    )
                )

            total = query.count()
            leads = (
                query.order_by(Lead.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )

            trace_logger.debug("Leads listed", total=total, page=page, limit=limit)

            return {
                "leads": [lead.to_dict() for lead in leads],
                "total": total,
                "page": page,
                "limit": limit,
            }

    def update_lead(self, lead_id: str, data: LeadUpdate) -> Dict[str, Any]:
        """Partial update; a nested company updates the linked one or creates one."""
        fields = data.model_dump(exclude_unset=True)
        trace_logger.info(
            "Updating lead",
            lead_id=lead_id,
            fields=[key for key in fields if key != "company"]
        )

        with self.store.get_session() as session:
            lead = self._get_lead(session, lead_id)

            if data.email and str(data.email) != lead.email:
                self._ensure_email_free(session, str(data.email))

            if data.company is not None:
                target_id = data.company_id or lead.company_id
                company_fields = data.company.model_dump(exclude_unset=True)
                if target_id:
                    company = self._get_company(session, target_id)
                    self._check_domain(session, company_fields.get("domain"), exclude_id=company.id)
                    for key, value in company_fields.items():
                        setattr(company, key, value)
                else:
                    if not company_fields.get("name"):
                        raise ValidationError("Company name is required to create a company")
                    self._check_domain(session, company_fields.get("domain"))
                    company = Company(**company_fields)
                    session.add(company)
                    session.flush()
                lead.company_id = company.id
            elif "company_id" in fields:
                lead.company_id = self._get_company(session, data.company_id).id if data.company_id else None

            for key, value in _lead_columns(fields).items():
                if key == "email" and value is not None:
                    value = str(value)
                setattr(lead, key, value)

            session.flush()
            session.refresh(lead)
            result = lead.to_dict()

        trace_logger.record_changed(entity="lead", entity_id=lead_id, operation="update")
        return result

    def delete_lead(self, lead_id: str):
        """Delete a lead with its interactions and messages."""
        with self.store.get_session() as session:
            lead = self._get_lead(session, lead_id)
            session.delete(lead)

        trace_logger.record_changed(entity="lead", entity_id=lead_id, operation="delete")

    # Timeline

    def list_interactions(self, lead_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Interaction timeline, newest first."""
        with self.store.get_session() as session:
            self._get_lead(session, lead_id)
            interactions = (
                session.query(Interaction)
                .filter(Interaction.lead_id == lead_id)
                .order_by(Interaction.created_at.desc())
                .limit(limit)
                .all()
            )
            return [interaction.to_dict() for interaction in interactions]

    def record_interaction(self, lead_id: str, data: InteractionCreate) -> Dict[str, Any]:
        with self.store.get_session() as session:
            self._get_lead(session, lead_id)
            interaction = Interaction(lead_id=lead_id, type=data.type, payload=data.payload)
            session.add(interaction)
            session.flush()
            result = interaction.to_dict()

        trace_logger.record_changed(
            entity="interaction",
            entity_id=result["id"],
            operation="create",
            lead_id=lead_id,
            interaction_type=data.type
        )
        return result

    def list_messages(self, lead_id: str) -> List[Dict[str, Any]]:
        with self.store.get_session() as session:
            self._get_lead(session, lead_id)
            messages = (
                session.query(Message)
                .filter(Message.lead_id == lead_id)
                .order_by(Message.created_at.desc())
                .all()
            )
            return [message.to_dict() for message in messages]

    def record_inbound_message(self, lead_id: str, data: InboundMessageCreate) -> Dict[str, Any]:
        """Store a reply from the lead and note it on the timeline."""
        with self.store.get_session() as session:
            self._get_lead(session, lead_id)
            message = Message(
                lead_id=lead_id,
                direction=MessageDirection.INBOUND,
                channel=MessageChannel(data.channel),
                subject=data.subject,
                body=data.body,
                status=MessageStatus.RECEIVED,
                meta=data.meta or {}
            )
            session.add(message)
            session.flush()

            session.add(Interaction(
                lead_id=lead_id,
                type="reply_received",
                payload={"message_id": message.id, "channel": message.channel.value}
            ))
            result = message.to_dict()

        trace_logger.record_changed(
            entity="message",
            entity_id=result["id"],
            operation="create",
            lead_id=lead_id,
            direction="inbound"
        )
        return result

    # Companies

    def create_company(self, data: CompanyCreate) -> Dict[str, Any]:
        with self.store.get_session() as session:
            self._check_domain(session, data.domain)
            company = Company(**data.model_dump())
            session.add(company)
            session.flush()
            result = company.to_dict()

        trace_logger.record_changed(entity="company", entity_id=result["id"], operation="create")
        return result

    def get_company(self, company_id: str) -> Dict[str, Any]:
        with self.store.get_session() as session:
            company = self._get_company(session, company_id)
            result = company.to_dict()
            result["lead_count"] = len(company.leads)
            return result

    def list_companies(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        industry: Optional[str] = None
    ) -> Dict[str, Any]:
        with self.store.get_session() as session:
            query = session.query(Company)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(Company.name.ilike(pattern), Company.domain.ilike(pattern)))
            if industry:
                query = query.filter(Company.industry.ilike(f"%{industry}%"))

            total = query.count()
            companies = (
                query.order_by(Company.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {
                "companies": [company.to_dict() for company in companies],
                "total": total,
                "page": page,
                "limit": limit,
            }

    def update_company(self, company_id: str, data: CompanyUpdate) -> Dict[str, Any]:
        fields = data.model_dump(exclude_unset=True)
        with self.store.get_session() as session:
            company = self._get_company(session, company_id)
            self._check_domain(session, fields.get("domain"), exclude_id=company_id)
            for key, value in fields.items():
                setattr(company, key, value)
            session.flush()
            result = company.to_dict()

        trace_logger.record_changed(entity="company", entity_id=company_id, operation="update")
        return result

    def delete_company(self, company_id: str):
        """Delete a company; its leads are kept and unlinked."""
        with self.store.get_session() as session:
            company = self._get_company(session, company_id)
            session.delete(company)

        trace_logger.record_changed(entity="company", entity_id=company_id, operation="delete")

    def get_health_status(self) -> Dict[str, Any]:
        counts = self.store.counts()
        return {
            "status": "healthy",
            "lead_count": counts["leads"],
            "company_count": counts["companies"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # Helpers

    def _get_lead(self, session, lead_id: str) -> Lead:
        lead = session.query(Lead).filter(Lead.id == lead_id).first()
        if not lead:
            raise NotFoundError("Lead", lead_id)
        return lead

    def _get_company(self, session, company_id: str) -> Company:
        company = session.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFoundError("Company", company_id)
        return company

    def _ensure_email_free(self, session, email: str):
        exists = session.query(func.count(Lead.id)).filter(Lead.email == email).scalar()
        if exists:
            raise ConflictError("A lead with this email already exists", {"email": email})

    def _check_domain(self, session, domain: Optional[str], exclude_id: Optional[str] = None):
        if not domain:
            return
        query = session.query(Company).filter(Company.domain == domain)
        if exclude_id:
            query = query.filter(Company.id != exclude_id)
        if query.first():
            raise ConflictError("A company with this domain already exists", {"domain": domain})

    def _upsert_company(self, session, data: CompanyCreate) -> Company:
        """Match an existing company by domain, otherwise create one."""
        fields = data.model_dump(exclude_unset=True)
        if data.domain:
            company = session.query(Company).filter(Company.domain == data.domain).first()
            if company:
                for key in ("name", "size", "industry"):
                    if key in fields:
                        setattr(company, key, fields[key])
                trace_logger.debug("Matched existing company", company_id=company.id)
                return company

        company = Company(**fields)
        session.add(company)
        session.flush()
        trace_logger.record_changed(entity="company", entity_id=company.id, operation="create")
        return company
