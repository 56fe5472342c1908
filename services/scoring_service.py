"""
Lead qualification scoring.

Combines Grok factor scores with profile weights and rule multipliers:

    final = clamp(round(sum(factor * weight) * rule_multiplier), 0, 100)
"""

import re
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from integrations import GrokClient, GrokClientError
from models import Lead, ScoringProfile, Interaction
from models.schemas import ScoringProfileCreate, ScoringProfileUpdate
from observability import trace_logger
from services.errors import NotFoundError
from services.prompts import (
    QUALIFICATION_PROMPT, QUALIFICATION_SYSTEM_PROMPT,
    render_prompt, messages_for, lead_context
)
from storage import CRMStore


FACTORS = ("industry_fit", "size_fit", "title_fit", "tech_signals")

_FACTOR_ALIASES = {
    "industry_fit": "industryFit",
    "size_fit": "sizeFit",
    "title_fit": "titleFit",
    "tech_signals": "techSignals",
}

FALLBACK_FACTOR = 50
FALLBACK_RATIONALE = "Fallback score due to AI scoring failure"
EXISTING_SCORE_RATIONALE = "Using existing score"
DEFAULT_CONFIDENCE = 0.8

_TITLE_RULE = re.compile(r"title includes\s+(.+)", re.IGNORECASE)
_SIZE_RULE = re.compile(r"size\s*>\s*(\d+)", re.IGNORECASE)
_INDUSTRY_RULE = re.compile(r"industry in\s+(.+)", re.IGNORECASE)


def evaluate_rule(lead: Dict[str, Any], rule: str) -> bool:
    """
    Evaluate one string rule against a lead dict.

    Supported forms: "domain", "title includes <kw>", "size > <n>",
    "industry in a, b, c". Anything else evaluates to False.
    """
    company = lead.get("company") or {}
    title = lead.get("title") or ""

    if "domain" in rule.lower():
        return bool(company.get("domain"))

    match = _TITLE_RULE.search(rule)
    if match:
        keyword = match.group(1).strip().strip("'\"").lower()
        return bool(title) and keyword in title.lower()

    match = _SIZE_RULE.search(rule)
    if match:
        size = company.get("size")
        return size is not None and size > int(match.group(1))

    match = _INDUSTRY_RULE.search(rule)
    if match:
        industry = (company.get("industry") or "").lower()
        if not industry:
            return False
        candidates = [item.strip().strip("'\"").lower() for item in match.group(1).split(",")]
        return any(candidate and candidate in industry for candidate in candidates)

    trace_logger.debug("Unrecognized scoring rule", rule=rule)
    return False


def validate_rules(lead: Dict[str, Any], rules: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Return the score multiplier and confidence implied by profile rules."""
    if not rules:
        return {"multiplier": 1.0, "confidence": DEFAULT_CONFIDENCE}

    multiplier = 1.0
    confidence = DEFAULT_CONFIDENCE
    checks = 0
    passed = 0

    for rule in rules.get("must_have") or []:
        checks += 1
        if evaluate_rule(lead, rule):
            passed += 1
        else:
            multiplier *= 0.5
            confidence *= 0.9

    for rule in rules.get("preferred") or []:
        checks += 1
        if evaluate_rule(lead, rule):
            passed += 1
            multiplier *= 1.1

    for rule in rules.get("disqualifiers") or []:
        if evaluate_rule(lead, rule):
            multiplier = 0.0
            confidence = 0.0
            break

    rule_score = passed / checks if checks else 1.0
    confidence = min(confidence * rule_score, 1.0)

    trace_logger.debug(
        "Rule validation completed",
        checks=checks,
        passed=passed,
        multiplier=multiplier,
        confidence=confidence
    )
    return {"multiplier": multiplier, "confidence": confidence}


def apply_weights(factors: Dict[str, float], weights: Dict[str, float]) -> float:
    return sum(factors[name] * weights.get(name, 0.0) for name in FACTORS)


def final_score(weighted: float, multiplier: float) -> int:
    return max(0, min(100, round(weighted * multiplier)))


def normalize_factors(raw: Any, default: float = FALLBACK_FACTOR) -> Dict[str, float]:
    """Coerce model factor output (snake or camel case keys) into 0..100 floats."""
    raw = raw if isinstance(raw, dict) else {}
    factors = {}
    for name in FACTORS:
        value = raw.get(name, raw.get(_FACTOR_ALIASES[name]))
        try:
            value = float(value)
        except (TypeError, ValueError):
            value = float(default)
        factors[name] = max(0.0, min(100.0, value))
    return factors


class ScoringService:
    """Scoring profiles and AI-assisted lead scoring."""

    def __init__(self, store: CRMStore, grok_client: Optional[GrokClient] = None):
        self.store = store
        self.grok_client = grok_client

    # Profiles

    def create_profile(self, data: ScoringProfileCreate) -> Dict[str, Any]:
        trace_logger.info("Creating scoring profile", profile_name=data.name)
        with self.store.get_session() as session:
            profile = ScoringProfile(
                name=data.name,
                weights=data.weights.model_dump(),
                rules=data.rules.model_dump(exclude_none=True) if data.rules else None
            )
            session.add(profile)
            session.flush()
            result = profile.to_dict()

        trace_logger.record_changed(entity="scoring_profile", entity_id=result["id"], operation="create")
        return result

    def list_profiles(self) -> List[Dict[str, Any]]:
        with self.store.get_session() as session:
            profiles = session.query(ScoringProfile).order_by(ScoringProfile.created_at.desc()).all()
            return [profile.to_dict() for profile in profiles]

    def get_profile(self, profile_id: str) -> Dict[str, Any]:
        with self.store.get_session() as session:
            return self._get_profile(session, profile_id).to_dict()

    def update_profile(self, profile_id: str, data: ScoringProfileUpdate) -> Dict[str, Any]:
        with self.store.get_session() as session:
            profile = self._get_profile(session, profile_id)
            if data.name is not None:
                profile.name = data.name
            if data.weights is not None:
                profile.weights = data.weights.model_dump()
            if data.rules is not None:
                profile.rules = data.rules.model_dump(exclude_none=True)
            session.flush()
            result = profile.to_dict()

        trace_logger.record_changed(entity="scoring_profile", entity_id=profile_id, operation="update")
        return result

    def delete_profile(self, profile_id: str):
        with self.store.get_session() as session:
            session.delete(self._get_profile(session, profile_id))

        trace_logger.record_changed(entity="scoring_profile", entity_id=profile_id, operation="delete")

    # Scoring

    def score_lead(self, lead_id: str, profile_id: str, force_rescore: bool = False) -> Dict[str, Any]:
        """Score a lead against a profile and persist the result."""
        start = time.perf_counter()
        trace_logger.info(
            "Scoring lead",
            lead_id=lead_id,
            profile_id=profile_id,
            force_rescore=force_rescore
        )

        with self.store.get_session() as session:
            lead = session.query(Lead).filter(Lead.id == lead_id).first()
            if not lead:
                raise NotFoundError("Lead", lead_id)
            profile = self._get_profile(session, profile_id)
            lead_dict = lead.to_dict()
            profile_dict = profile.to_dict()

        if not force_rescore and lead_dict["score"] > 0:
            trace_logger.info("Lead already scored, returning existing score", lead_id=lead_id)
            return {
                "lead_id": lead_id,
                "score": lead_dict["score"],
                "factors": normalize_factors(lead_dict["score_breakdown"]),
                "rationale": EXISTING_SCORE_RATIONALE,
                "profile_used": profile_dict["name"],
                "scored_at": lead_dict["updated_at"],
                "confidence": DEFAULT_CONFIDENCE,
                "fallback": False,
            }

        ai_score = self._ai_score(lead_dict, profile_dict)
        weighted = apply_weights(ai_score["factors"], profile_dict["weights"])
        rule_result = validate_rules(lead_dict, profile_dict["rules"])
        score = final_score(weighted, rule_result["multiplier"])
        scored_at = datetime.now(timezone.utc)

        with self.store.get_session() as session:
            lead = session.query(Lead).filter(Lead.id == lead_id).first()
            if not lead:
                raise NotFoundError("Lead", lead_id)
            lead.score = score
            lead.score_breakdown = ai_score["factors"]
            session.add(Interaction(
                lead_id=lead_id,
                type="lead_scored",
                payload={
                    "profile_id": profile_id,
                    "profile_name": profile_dict["name"],
                    "ai_score": ai_score["score"],
                    "weighted_score": weighted,
                    "rule_validation": rule_result,
                    "final_score": score,
                    "fallback": ai_score["fallback"],
                    "timestamp": scored_at.isoformat(),
                }
            ))

        trace_logger.info(
            "Lead scored",
            lead_id=lead_id,
            final_score=score,
            ai_score=ai_score["score"],
            profile_name=profile_dict["name"],
            fallback=ai_score["fallback"],
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )

        return {
            "lead_id": lead_id,
            "score": score,
            "factors": ai_score["factors"],
            "rationale": ai_score["rationale"],
            "profile_used": profile_dict["name"],
            "scored_at": scored_at,
            "confidence": rule_result["confidence"],
            "fallback": ai_score["fallback"],
        }

    def get_health_status(self) -> Dict[str, Any]:
        with self.store.get_session() as session:
            profile_count = session.query(ScoringProfile).count()
        return {
            "status": "healthy",
            "profile_count": profile_count,
            "grok_client": self.grok_client.get_usage_stats() if self.grok_client else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _ai_score(self, lead_dict: Dict[str, Any], profile_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Ask Grok for factor scores; fixed neutral factors on any failure."""
        prompt = render_prompt(
            QUALIFICATION_PROMPT,
            lead=lead_context(lead_dict),
            scoringProfile={"weights": profile_dict["weights"], "rules": profile_dict["rules"]}
        )

        try:
            if self.grok_client is None:
                raise GrokClientError("Grok client is not configured")
            response = self.grok_client.chat_json(
                messages_for(QUALIFICATION_SYSTEM_PROMPT, prompt),
                temperature=0.1,
                max_tokens=500
            )
            if not isinstance(response, dict):
                raise GrokClientError("Scoring response is not a JSON object")
        except GrokClientError as e:
            trace_logger.error_occurred(
                error_type="ai_scoring_error",
                error_message=str(e),
                context={"lead_id": lead_dict["id"]}
            )
            return {
                "score": FALLBACK_FACTOR,
                "rationale": FALLBACK_RATIONALE,
                "factors": normalize_factors(None),
                "fallback": True,
            }

        raw_score = response.get("score")
        default = raw_score if isinstance(raw_score, (int, float)) else FALLBACK_FACTOR
        return {
            "score": raw_score,
            "rationale": str(response.get("rationale") or "No rationale provided"),
            "factors": normalize_factors(response.get("factors"), default=default),
            "fallback": False,
        }

    def _get_profile(self, session, profile_id: str) -> ScoringProfile:
        profile = session.query(ScoringProfile).filter(ScoringProfile.id == profile_id).first()
        if not profile:
            raise NotFoundError("Scoring profile", profile_id)
        return profile
