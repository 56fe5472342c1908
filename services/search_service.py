"""
Full-text search across leads, companies and interactions.
"""

import math
import time
from typing import Optional, Dict, Any, List, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import String, cast, or_

from models import Company, Lead, Interaction
from models.schemas import SearchFilters
from observability import trace_logger
from services.errors import ValidationError
from storage import CRMStore


SEARCH_TYPES = ("leads", "companies", "interactions", "all")
SUGGESTION_MIN_LENGTH = 2


def calculate_relevance(item: Dict[str, Any], query: str) -> int:
    """
    Rank a search hit.

    Exact name +100, exact title +80; substring name +50, title +40,
    email +30, industry +25; +10 per query word in the name, +8 in the title.
    """
    q = query.lower()

    def field(key):
        value = item.get(key)
        return value.lower() if isinstance(value, str) else None

    full_name, name, title = field("full_name"), field("name"), field("title")
    email, industry = field("email"), field("industry")
    score = 0

    if full_name == q:
        score += 100
    if name == q:
        score += 100
    if title == q:
        score += 80

    if full_name and q in full_name:
        score += 50
    if name and q in name:
        score += 50
    if title and q in title:
        score += 40
    if email and q in email:
        score += 30
    if industry and q in industry:
        score += 25

    for word in q.split(" "):
        if full_name and word in full_name:
            score += 10
        if name and word in name:
            score += 10
        if title and word in title:
            score += 8

    return score


def parse_filters(filters: Union[SearchFilters, Dict[str, Any], None]) -> SearchFilters:
    """Validate raw filter values, reporting failures as a 400."""
    if isinstance(filters, SearchFilters):
        return filters
    try:
        return SearchFilters.model_validate(filters or {})
    except PydanticValidationError as e:
        details = [
            {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
            for error in e.errors()
        ]
        raise ValidationError("Invalid search filters", details)


def _ordered(column, sort_order: str):
    return column.asc() if sort_order == "asc" else column.desc()


class SearchService:
    """Search and typeahead suggestions."""

    def __init__(self, store: CRMStore):
        self.store = store

    def search(
        self,
        q: str,
        type: str = "all",
        page: int = 1,
        limit: int = 20,
        filters: Union[SearchFilters, Dict[str, Any], None] = None,
        sort_by: str = "relevance",
        sort_order: str = "desc"
    ) -> Dict[str, Any]:
        start = time.perf_counter()
        if type not in SEARCH_TYPES:
            raise ValidationError(f"Unknown search type '{type}'")
        filters = parse_filters(filters)

        handlers = {
            "leads": self.search_leads,
            "companies": self.search_companies,
            "interactions": self.search_interactions,
            "all": self.search_all,
        }
        result = handlers[type](q, page, limit, filters, sort_by, sort_order)

        trace_logger.info(
            "Search completed",
            query=q,
            search_type=type,
            total=result["total"],
            returned=len(result["results"]),
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )
        return result

    def search_leads(self, q, page, limit, filters, sort_by, sort_order) -> Dict[str, Any]:
        pattern = f"%{q}%"
        with self.store.get_session() as session:
            query = (
                session.query(Lead)
                .outerjoin(Company, Lead.company_id == Company.id)
                .filter(or_(
                    Lead.full_name.ilike(pattern),
                    Lead.title.ilike(pattern),
                    Lead.email.ilike(pattern),
                    Lead.notes.ilike(pattern),
                    Company.name.ilike(pattern),
                    Company.industry.ilike(pattern),
                ))
            )

            if filters.stage:
                query = query.filter(Lead.stage == filters.stage)
            if filters.source:
                query = query.filter(Lead.source == filters.source)
            if filters.min_score is not None:
                query = query.filter(Lead.score >= filters.min_score)
            if filters.max_score is not None:
                query = query.filter(Lead.score <= filters.max_score)

            order = {
                "date": _ordered(Lead.updated_at, sort_order),
                "score": _ordered(Lead.score, sort_order),
                "name": _ordered(Lead.full_name, sort_order),
            }.get(sort_by, Lead.updated_at.desc())

            total = query.count()
            leads = query.order_by(order).offset((page - 1) * limit).limit(limit).all()

            results = []
            for lead in leads:
                item = {
                    "id": lead.id,
                    "type": "lead",
                    "full_name": lead.full_name,
                    "title": lead.title,
                    "email": lead.email,
                    "score": lead.score,
                    "stage": lead.stage.value,
                    "company": lead.company.to_dict() if lead.company else None,
                    "updated_at": lead.updated_at.isoformat(),
                }
                item["relevance"] = calculate_relevance(item, q)
                results.append(item)

        return {"type": "leads", "query": q, "results": results, "total": total, "page": page, "limit": limit}

    def search_companies(self, q, page, limit, filters, sort_by, sort_order) -> Dict[str, Any]:
        pattern = f"%{q}%"
        with self.store.get_session() as session:
            query = session.query(Company).filter(or_(
                Company.name.ilike(pattern),
                Company.domain.ilike(pattern),
                Company.industry.ilike(pattern),
            ))

            if filters.industry:
                query = query.filter(Company.industry == filters.industry)
            if filters.min_size is not None:
                query = query.filter(Company.size >= filters.min_size)
            if filters.max_size is not None:
                query = query.filter(Company.size <= filters.max_size)

            order = {
                "date": _ordered(Company.updated_at, sort_order),
                "name": _ordered(Company.name, sort_order),
                "size": _ordered(Company.size, sort_order),
            }.get(sort_by, Company.updated_at.desc())

            total = query.count()
            companies = query.order_by(order).offset((page - 1) * limit).limit(limit).all()

            results = []
            for company in companies:
                item = {
                    "id": company.id,
                    "type": "company",
                    "name": company.name,
                    "domain": company.domain,
                    "industry": company.industry,
                    "size": company.size,
                    "updated_at": company.updated_at.isoformat(),
                }
                item["relevance"] = calculate_relevance(item, q)
                results.append(item)

        return {"type": "companies", "query": q, "results": results, "total": total, "page": page, "limit": limit}

    def search_interactions(self, q, page, limit, filters, sort_by, sort_order) -> Dict[str, Any]:
        pattern = f"%{q}%"
        with self.store.get_session() as session:
            query = session.query(Interaction).filter(or_(
                Interaction.type.ilike(pattern),
                cast(Interaction.payload, String).ilike(pattern),
            ))

            if filters.type:
                query = query.filter(Interaction.type == filters.type)
            if filters.lead_id:
                query = query.filter(Interaction.lead_id == filters.lead_id)
            if filters.date_from:
                query = query.filter(Interaction.created_at >= filters.date_from)
            if filters.date_to:
                query = query.filter(Interaction.created_at <= filters.date_to)

            order = {
                "date": _ordered(Interaction.created_at, sort_order),
                "type": _ordered(Interaction.type, sort_order),
            }.get(sort_by, Interaction.created_at.desc())

            total = query.count()
            interactions = query.order_by(order).offset((page - 1) * limit).limit(limit).all()

            results = []
            for interaction in interactions:
                lead = interaction.lead
                item = {
                    "id": interaction.id,
                    "type": "interaction",
                    "interaction_type": interaction.type,
                    "lead_id": interaction.lead_id,
                    "lead_name": lead.full_name if lead else None,
                    "company_name": lead.company.name if lead and lead.company else None,
                    "payload": interaction.payload,
                    "created_at": interaction.created_at.isoformat(),
                }
                item["relevance"] = calculate_relevance(item, q)
                results.append(item)

        return {"type": "interactions", "query": q, "results": results, "total": total, "page": page, "limit": limit}

    def search_all(self, q, page, limit, filters, sort_by, sort_order) -> Dict[str, Any]:
        """Top hits of each type merged by relevance."""
        per_type = math.ceil(limit / 3)
        leads = self.search_leads(q, 1, per_type, filters, sort_by, sort_order)
        companies = self.search_companies(q, 1, per_type, filters, sort_by, sort_order)
        interactions = self.search_interactions(q, 1, per_type, filters, sort_by, sort_order)

        merged = sorted(
            leads["results"] + companies["results"] + interactions["results"],
            key=lambda item: item["relevance"],
            reverse=True
        )
        offset = (page - 1) * limit

        return {
            "type": "all",
            "query": q,
            "results": merged[offset:offset + limit],
            "total": leads["total"] + companies["total"] + interactions["total"],
            "page": page,
            "limit": limit,
            "breakdown": {
                "leads": leads["total"],
                "companies": companies["total"],
                "interactions": interactions["total"],
            },
        }

    def suggestions(self, q: Optional[str]) -> List[Dict[str, Any]]:
        """Up to ten lead and company suggestions for a partial query."""
        if not q or len(q) < SUGGESTION_MIN_LENGTH:
            return []

        pattern = f"%{q}%"
        with self.store.get_session() as session:
            leads = (
                session.query(Lead)
                .outerjoin(Company, Lead.company_id == Company.id)
                .filter(or_(
                    Lead.full_name.ilike(pattern),
                    Lead.title.ilike(pattern),
                    Company.name.ilike(pattern),
                ))
                .limit(5)
                .all()
            )
            companies = (
                session.query(Company)
                .filter(or_(Company.name.ilike(pattern), Company.industry.ilike(pattern)))
                .limit(5)
                .all()
            )

            suggestions = [
                {
                    "type": "lead",
                    "text": lead.full_name,
                    "subtitle": lead.title or (lead.company.name if lead.company else None),
                }
                for lead in leads
            ] + [
                {"type": "company", "text": company.name, "subtitle": company.industry}
                for company in companies
            ]

        trace_logger.debug("Search suggestions", query=q, count=len(suggestions))
        return suggestions[:10]
