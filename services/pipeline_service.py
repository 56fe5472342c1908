"""
Sales pipeline state machine.
Validated stage transitions, rule-based auto-advancement and analytics.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy import func

from models import Lead, Interaction, Message, PipelineStage, MessageDirection
from observability import trace_logger
from services.errors import NotFoundError, InvalidStageTransitionError
from storage import CRMStore


VALID_TRANSITIONS = {
    PipelineStage.NEW: (PipelineStage.QUALIFIED, PipelineStage.LOST),
    PipelineStage.QUALIFIED: (PipelineStage.OUTREACH, PipelineStage.LOST),
    PipelineStage.OUTREACH: (PipelineStage.REPLIED, PipelineStage.LOST),
    PipelineStage.REPLIED: (PipelineStage.MEETING_SCHEDULED, PipelineStage.LOST),
    PipelineStage.MEETING_SCHEDULED: (PipelineStage.WON, PipelineStage.LOST),
    PipelineStage.WON: (),
    PipelineStage.LOST: (),
}

TERMINAL_STAGES = (PipelineStage.WON, PipelineStage.LOST)

QUALIFY_SCORE_THRESHOLD = 70
AUTO_ADVANCE_WINDOW = timedelta(days=7)
PROGRESSION_WINDOW = timedelta(days=30)
AUTO_ADVANCE_REASON = "Automatic advancement based on rules"

_STAGE_HOOK_MESSAGES = {
    PipelineStage.QUALIFIED: "Lead qualified - outreach automation triggered",
    PipelineStage.REPLIED: "Lead replied - follow-up automation triggered",
    PipelineStage.MEETING_SCHEDULED: "Meeting scheduled - preparation automation triggered",
    PipelineStage.WON: "Lead won - onboarding automation triggered",
    PipelineStage.LOST: "Lead lost - re-engagement automation triggered",
}


def is_valid_transition(current: PipelineStage, target: PipelineStage) -> bool:
    return PipelineStage(target) in VALID_TRANSITIONS[PipelineStage(current)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineService:
    """Pipeline stage management."""

    def __init__(self, store: CRMStore, now=_utcnow):
        self.store = store
        self._now = now

    def advance_lead(
        self,
        lead_id: str,
        target_stage: PipelineStage,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Move a lead to an adjacent stage and record the transition."""
        start = time.perf_counter()
        target_stage = PipelineStage(target_stage)

        with self.store.get_session() as session:
            lead = self._get_lead(session, lead_id)
            previous_stage = lead.stage

            if not is_valid_transition(previous_stage, target_stage):
                trace_logger.warning(
                    "Rejected stage transition",
                    lead_id=lead_id,
                    current_stage=previous_stage.value,
                    target_stage=target_stage.value
                )
                raise InvalidStageTransitionError(
                    previous_stage.value,
                    target_stage.value,
                    [stage.value for stage in VALID_TRANSITIONS[previous_stage]]
                )

            lead.stage = target_stage
            session.add(Interaction(
                lead_id=lead_id,
                type="stage_advanced",
                payload={
                    "previous_stage": previous_stage.value,
                    "new_stage": target_stage.value,
                    "reason": reason or "Manual advancement",
                    "timestamp": self._now().isoformat(),
                }
            ))
            session.flush()
            session.refresh(lead)
            updated_at = lead.updated_at

        trace_logger.info(
            "Lead advanced",
            lead_id=lead_id,
            previous_stage=previous_stage.value,
            new_stage=target_stage.value,
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )
        self._trigger_stage_automation(lead_id, target_stage)

        return {
            "message": f"Lead advanced from {previous_stage.value} to {target_stage.value}",
            "lead_id": lead_id,
            "previous_stage": previous_stage,
            "stage": target_stage,
            "updated_at": updated_at,
        }

    def check_auto_advancement(self, lead_id: str) -> Dict[str, Any]:
        """Advance a lead one stage if an auto-advancement rule matches."""
        with self.store.get_session() as session:
            lead = self._get_lead(session, lead_id)
            current_stage = lead.stage
            new_stage = self._evaluate_rules(session, lead)

        if new_stage is None:
            trace_logger.debug("No auto-advancement", lead_id=lead_id, stage=current_stage.value)
            return {"lead_id": lead_id, "advanced": False, "stage": current_stage}

        trace_logger.info(
            "Auto-advancement triggered",
            lead_id=lead_id,
            current_stage=current_stage.value,
            new_stage=new_stage.value
        )
        result = self.advance_lead(lead_id, new_stage, AUTO_ADVANCE_REASON)
        return {"lead_id": lead_id, "advanced": True, "stage": result["stage"]}

    def run_auto_advancement_sweep(self) -> Dict[str, int]:
        """Check every lead in a non-terminal stage."""
        start = time.perf_counter()
        with self.store.get_session() as session:
            lead_ids = [
                row.id for row in
                session.query(Lead.id).filter(Lead.stage.notin_(TERMINAL_STAGES)).all()
            ]

        advanced = 0
        for lead_id in lead_ids:
            try:
                if self.check_auto_advancement(lead_id)["advanced"]:
                    advanced += 1
            except NotFoundError:
                # Deleted between listing and checking
                continue

        trace_logger.info(
            "Auto-advancement sweep completed",
            checked=len(lead_ids),
            advanced=advanced,
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )
        return {"checked": len(lead_ids), "advanced": advanced}

    def get_analytics(self) -> Dict[str, Any]:
        """Stage counts, conversion rates and recent stage progression."""
        start = time.perf_counter()
        with self.store.get_session() as session:
            rows = session.query(Lead.stage, func.count(Lead.id)).group_by(Lead.stage).all()
            stage_counts = {stage.value: 0 for stage in PipelineStage}
            for stage, count in rows:
                stage_counts[stage.value] = count

            total = sum(stage_counts.values())
            qualified = total - stage_counts[PipelineStage.NEW.value]
            won = stage_counts[PipelineStage.WON.value]
            lost = stage_counts[PipelineStage.LOST.value]

            progression = self._stage_progression(session)

        def rate(part: int, whole: int) -> float:
            return round(part / whole * 100, 2) if whole else 0.0

        trace_logger.info(
            "Pipeline analytics generated",
            duration_ms=round((time.perf_counter() - start) * 1000, 2)
        )

        return {
            "stage_counts": stage_counts,
            "totals": {
                "total_leads": total,
                "qualified_leads": qualified,
                "won_leads": won,
                "lost_leads": lost,
            },
            "conversion_rates": {
                "qualification_rate": rate(qualified, total),
                "win_rate": rate(won, qualified),
                "loss_rate": rate(lost, qualified),
            },
            "stage_progression": progression,
            "generated_at": self._now().isoformat(),
        }

    def get_leads_by_stage(self, stage: PipelineStage, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        stage = PipelineStage(stage)
        with self.store.get_session() as session:
            query = session.query(Lead).filter(Lead.stage == stage)
            total = query.count()
            leads = (
                query.order_by(Lead.updated_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {
                "leads": [lead.to_dict() for lead in leads],
                "total": total,
                "page": page,
                "limit": limit,
            }

    def get_board(self, per_stage: int = 50) -> Dict[str, List[Dict[str, Any]]]:
        """Leads grouped by stage, highest score first."""
        board = {}
        with self.store.get_session() as session:
            for stage in PipelineStage:
                leads = (
                    session.query(Lead)
                    .filter(Lead.stage == stage)
                    .order_by(Lead.score.desc(), Lead.updated_at.desc())
                    .limit(per_stage)
                    .all()
                )
                board[stage.value] = [lead.to_dict() for lead in leads]
        return board

    def get_health_status(self) -> Dict[str, Any]:
        with self.store.get_session() as session:
            lead_count = session.query(Lead).count()
            interaction_count = session.query(Interaction).count()
        return {
            "status": "healthy",
            "lead_count": lead_count,
            "interaction_count": interaction_count,
            "timestamp": self._now().isoformat(),
        }

    def _evaluate_rules(self, session, lead: Lead) -> Optional[PipelineStage]:
        cutoff = self._now() - AUTO_ADVANCE_WINDOW

        if lead.stage == PipelineStage.NEW and lead.score >= QUALIFY_SCORE_THRESHOLD:
            return PipelineStage.QUALIFIED

        if lead.stage == PipelineStage.OUTREACH:
            replies = (
                session.query(func.count(Message.id))
                .filter(
                    Message.lead_id == lead.id,
                    Message.direction == MessageDirection.INBOUND,
                    Message.created_at > cutoff
                )
                .scalar()
            )
            if replies:
                return PipelineStage.REPLIED

        if lead.stage == PipelineStage.REPLIED:
            meetings = (
                session.query(func.count(Interaction.id))
                .filter(
                    Interaction.lead_id == lead.id,
                    Interaction.type == "meeting",
                    Interaction.created_at > cutoff
                )
                .scalar()
            )
            if meetings:
                return PipelineStage.MEETING_SCHEDULED

        if lead.stage == PipelineStage.MEETING_SCHEDULED:
            outcomes = (
                session.query(Interaction)
                .filter(
                    Interaction.lead_id == lead.id,
                    Interaction.type == "meeting_outcome",
                    Interaction.created_at > cutoff
                )
                .all()
            )
            if any((outcome.payload or {}).get("outcome") == "positive" for outcome in outcomes):
                return PipelineStage.WON

        return None

    def _stage_progression(self, session) -> Dict[str, Dict[str, int]]:
        cutoff = self._now() - PROGRESSION_WINDOW
        transitions = (
            session.query(Interaction.payload)
            .filter(Interaction.type == "stage_advanced", Interaction.created_at >= cutoff)
            .all()
        )
        progression = {}
        for (payload,) in transitions:
            payload = payload or {}
            key = f"{payload.get('previous_stage')}->{payload.get('new_stage')}"
            progression.setdefault(key, {"count": 0})
            progression[key]["count"] += 1
        return progression

    def _trigger_stage_automation(self, lead_id: str, stage: PipelineStage):
        message = _STAGE_HOOK_MESSAGES.get(stage)
        if message:
            trace_logger.debug(message, lead_id=lead_id, stage=stage.value)

    def _get_lead(self, session, lead_id: str) -> Lead:
        lead = session.query(Lead).filter(Lead.id == lead_id).first()
        if not lead:
            raise NotFoundError("Lead", lead_id)
        return lead
