"""
Unit tests for PipelineService.

Tests cover:
- Stage transition validation
- Auto-advancement rules and the background sweep
- Analytics, board and per-stage listing
"""

from datetime import datetime, timedelta, timezone

import pytest

from models import Lead, PipelineStage
from models.schemas import InboundMessageCreate, InteractionCreate, LeadCreate
from services import InvalidStageTransitionError, NotFoundError, PipelineService
from services.pipeline_service import AUTO_ADVANCE_REASON, is_valid_transition


def set_lead(store, lead_id, **fields):
    with store.get_session() as session:
        lead = session.query(Lead).filter(Lead.id == lead_id).first()
        for key, value in fields.items():
            setattr(lead, key, value)


class TestTransitions:
    """Tests for the stage transition table."""

    @pytest.mark.parametrize("current,target", [
        (PipelineStage.NEW, PipelineStage.QUALIFIED),
        (PipelineStage.QUALIFIED, PipelineStage.OUTREACH),
        (PipelineStage.OUTREACH, PipelineStage.REPLIED),
        (PipelineStage.REPLIED, PipelineStage.MEETING_SCHEDULED),
        (PipelineStage.MEETING_SCHEDULED, PipelineStage.WON),
        (PipelineStage.REPLIED, PipelineStage.LOST),
    ])
    def test_allowed(self, current, target):
        assert is_valid_transition(current, target) is True

    @pytest.mark.parametrize("current,target", [
        (PipelineStage.NEW, PipelineStage.OUTREACH),
        (PipelineStage.QUALIFIED, PipelineStage.NEW),
        (PipelineStage.WON, PipelineStage.LOST),
        (PipelineStage.LOST, PipelineStage.NEW),
        (PipelineStage.NEW, PipelineStage.NEW),
    ])
    def test_rejected(self, current, target):
        assert is_valid_transition(current, target) is False


class TestAdvanceLead:
    """Tests for advance_lead."""

    def test_advance_records_interaction(self, store, lead_service, sample_lead):
        result = PipelineService(store).advance_lead(sample_lead["id"], PipelineStage.QUALIFIED, "Good fit")

        assert result["previous_stage"] == PipelineStage.NEW
        assert result["stage"] == PipelineStage.QUALIFIED
        assert result["message"] == "Lead advanced from NEW to QUALIFIED"
        assert lead_service.get_lead(sample_lead["id"])["stage"] == "QUALIFIED"
        interaction = lead_service.list_interactions(sample_lead["id"])[0]
        assert interaction["type"] == "stage_advanced"
        assert interaction["payload"]["previous_stage"] == "NEW"
        assert interaction["payload"]["new_stage"] == "QUALIFIED"
        assert interaction["payload"]["reason"] == "Good fit"

    def test_skipping_a_stage_is_rejected(self, store, lead_service, sample_lead):
        with pytest.raises(InvalidStageTransitionError) as exc_info:
            PipelineService(store).advance_lead(sample_lead["id"], PipelineStage.OUTREACH)

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["allowed"] == ["QUALIFIED", "LOST"]
        assert lead_service.get_lead(sample_lead["id"])["stage"] == "NEW"
        assert lead_service.list_interactions(sample_lead["id"]) == []

    def test_terminal_stage_cannot_move(self, store, sample_lead):
        service = PipelineService(store)
        service.advance_lead(sample_lead["id"], PipelineStage.LOST)

        with pytest.raises(InvalidStageTransitionError):
            service.advance_lead(sample_lead["id"], PipelineStage.NEW)

    def test_unknown_lead(self, store):
        with pytest.raises(NotFoundError):
            PipelineService(store).advance_lead("missing", PipelineStage.QUALIFIED)


class TestAutoAdvancement:
    """Tests for rule-based auto-advancement."""

    def test_high_score_qualifies(self, store, sample_lead):
        set_lead(store, sample_lead["id"], score=75)

        result = PipelineService(store).check_auto_advancement(sample_lead["id"])

        assert result["advanced"] is True
        assert result["stage"] == PipelineStage.QUALIFIED

    def test_low_score_stays_new(self, store, sample_lead):
        set_lead(store, sample_lead["id"], score=69)

        result = PipelineService(store).check_auto_advancement(sample_lead["id"])

        assert result == {"lead_id": sample_lead["id"], "advanced": False, "stage": PipelineStage.NEW}

    def test_recent_reply_moves_outreach_to_replied(self, store, lead_service, sample_lead):
        set_lead(store, sample_lead["id"], stage=PipelineStage.OUTREACH)
        lead_service.record_inbound_message(sample_lead["id"], InboundMessageCreate(body="Let's talk"))

        result = PipelineService(store).check_auto_advancement(sample_lead["id"])

        assert result["stage"] == PipelineStage.REPLIED
        interaction = lead_service.list_interactions(sample_lead["id"])[0]
        assert interaction["payload"]["reason"] == AUTO_ADVANCE_REASON

    def test_old_reply_is_ignored(self, store, lead_service, sample_lead):
        set_lead(store, sample_lead["id"], stage=PipelineStage.OUTREACH)
        lead_service.record_inbound_message(sample_lead["id"], InboundMessageCreate(body="Let's talk"))
        later = PipelineService(store, now=lambda: datetime.now(timezone.utc) + timedelta(days=8))

        assert later.check_auto_advancement(sample_lead["id"])["advanced"] is False

    def test_meeting_moves_replied_forward(self, store, lead_service, sample_lead):
        set_lead(store, sample_lead["id"], stage=PipelineStage.REPLIED)
        lead_service.record_interaction(sample_lead["id"], InteractionCreate(type="meeting", payload={"duration": 30}))

        result = PipelineService(store).check_auto_advancement(sample_lead["id"])

        assert result["stage"] == PipelineStage.MEETING_SCHEDULED

    def test_positive_outcome_wins(self, store, lead_service, sample_lead):
        set_lead(store, sample_lead["id"], stage=PipelineStage.MEETING_SCHEDULED)
        lead_service.record_interaction(
            sample_lead["id"], InteractionCreate(type="meeting_outcome", payload={"outcome": "positive"})
        )

        assert PipelineService(store).check_auto_advancement(sample_lead["id"])["stage"] == PipelineStage.WON

    def test_negative_outcome_does_not_win(self, store, lead_service, sample_lead):
        set_lead(store, sample_lead["id"], stage=PipelineStage.MEETING_SCHEDULED)
        lead_service.record_interaction(
            sample_lead["id"], InteractionCreate(type="meeting_outcome", payload={"outcome": "negative"})
        )

        assert PipelineService(store).check_auto_advancement(sample_lead["id"])["advanced"] is False

    def test_sweep_checks_open_leads(self, store, lead_service, sample_lead):
        set_lead(store, sample_lead["id"], score=90)
        closed = lead_service.create_lead(LeadCreate(full_name="Closed Deal"))
        set_lead(store, closed["id"], stage=PipelineStage.WON)

        result = PipelineService(store).run_auto_advancement_sweep()

        assert result == {"checked": 1, "advanced": 1}


class TestAnalytics:
    """Tests for analytics and board views."""

    def test_analytics(self, store, lead_service, sample_lead):
        lead_service.create_lead(LeadCreate(full_name="Still New"))
        service = PipelineService(store)
        service.advance_lead(sample_lead["id"], PipelineStage.QUALIFIED)
        service.advance_lead(sample_lead["id"], PipelineStage.LOST)

        analytics = service.get_analytics()

        assert analytics["stage_counts"]["NEW"] == 1
        assert analytics["stage_counts"]["LOST"] == 1
        assert analytics["stage_counts"]["WON"] == 0
        assert analytics["totals"] == {
            "total_leads": 2, "qualified_leads": 1, "won_leads": 0, "lost_leads": 1
        }
        assert analytics["conversion_rates"] == {
            "qualification_rate": 50.0, "win_rate": 0.0, "loss_rate": 100.0
        }
        assert analytics["stage_progression"] == {
            "NEW->QUALIFIED": {"count": 1},
            "QUALIFIED->LOST": {"count": 1},
        }

    def test_empty_analytics(self, store):
        analytics = PipelineService(store).get_analytics()

        assert analytics["totals"]["total_leads"] == 0
        assert analytics["conversion_rates"]["qualification_rate"] == 0.0

    def test_board_groups_by_stage(self, store, sample_lead):
        board = PipelineService(store).get_board()

        assert set(board) == {stage.value for stage in PipelineStage}
        assert [lead["id"] for lead in board["NEW"]] == [sample_lead["id"]]
        assert board["WON"] == []

    def test_leads_by_stage(self, store, sample_lead):
        result = PipelineService(store).get_leads_by_stage(PipelineStage.NEW)

        assert result["total"] == 1
        assert result["leads"][0]["id"] == sample_lead["id"]
