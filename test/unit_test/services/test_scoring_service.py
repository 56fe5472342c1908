"""
Unit tests for lead scoring.

Tests cover:
- Rule evaluation and rule-based multipliers
- Factor normalization from model output
- ScoringService.score_lead with Grok, with fallbacks, and with cached scores
- Scoring profile management
"""

import pytest

from conftest import server_error
from models.schemas import ScoringProfileCreate, ScoringProfileUpdate, ScoringRules, ScoringWeights
from services import NotFoundError, ScoringService
from services.scoring_service import (
    EXISTING_SCORE_RATIONALE, FALLBACK_RATIONALE,
    apply_weights, evaluate_rule, final_score, normalize_factors, validate_rules
)


LEAD = {
    "full_name": "John Smith",
    "title": "VP of Sales",
    "company": {"name": "TechCorp Solutions", "domain": "techcorp.com", "size": 250, "industry": "SaaS"},
}

GROK_SCORE = {
    "score": 86,
    "factors": {"industry_fit": 90, "size_fit": 80, "title_fit": 90, "tech_signals": 80},
    "rationale": "SaaS VP of Sales at a mid-size company",
}


class TestRules:
    """Tests for string rule evaluation."""

    @pytest.mark.parametrize("rule,expected", [
        ("domain", True),
        ("title includes VP", True),
        ("title includes CTO", False),
        ("size > 100", True),
        ("size > 500", False),
        ("industry in SaaS, Data, Cloud", True),
        ("industry in Finance, Healthcare", False),
        ("something unsupported", False),
    ])
    def test_evaluate_rule(self, rule, expected):
        assert evaluate_rule(LEAD, rule) is expected

    def test_industry_rule_without_company(self):
        assert evaluate_rule({"title": "CTO"}, "industry in SaaS") is False

    def test_no_rules_is_neutral(self):
        assert validate_rules(LEAD, None) == {"multiplier": 1.0, "confidence": 0.8}

    def test_failed_must_have_halves_multiplier(self):
        result = validate_rules(LEAD, {"must_have": ["domain", "title includes CTO"]})

        assert result["multiplier"] == pytest.approx(0.5)
        assert result["confidence"] == pytest.approx(0.8 * 0.9 * 0.5)

    def test_preferred_rule_boosts(self):
        result = validate_rules(LEAD, {"preferred": ["industry in SaaS"]})

        assert result["multiplier"] == pytest.approx(1.1)

    def test_disqualifier_zeroes_score(self):
        result = validate_rules(LEAD, {"must_have": ["domain"], "disqualifiers": ["size > 100"]})

        assert result == {"multiplier": 0.0, "confidence": 0.0}


class TestScoreMath:
    """Tests for weights, clamping and factor normalization."""

    def test_apply_weights(self):
        factors = {"industry_fit": 90, "size_fit": 80, "title_fit": 90, "tech_signals": 80}
        weights = {"industry_fit": 0.3, "size_fit": 0.2, "title_fit": 0.3, "tech_signals": 0.2}

        assert apply_weights(factors, weights) == pytest.approx(86.0)

    def test_final_score_is_clamped(self):
        assert final_score(95.0, 1.21) == 100
        assert final_score(-5.0, 1.0) == 0
        assert final_score(86.0, 1.0) == 86

    def test_normalize_accepts_camel_case(self):
        factors = normalize_factors({"industryFit": 91, "sizeFit": "70", "titleFit": 120, "techSignals": None}, default=60)

        assert factors == {"industry_fit": 91.0, "size_fit": 70.0, "title_fit": 100.0, "tech_signals": 60.0}

    def test_normalize_missing_factors(self):
        assert normalize_factors(None) == {
            "industry_fit": 50.0, "size_fit": 50.0, "title_fit": 50.0, "tech_signals": 50.0
        }

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            ScoringWeights(industry_fit=0.5, size_fit=0.5, title_fit=0.5, tech_signals=0.5)


class TestScoreLead:
    """Tests for ScoringService.score_lead."""

    @pytest.fixture
    def profile(self, store):
        return ScoringService(store).create_profile(ScoringProfileCreate(
            name="High-Growth SaaS",
            weights=ScoringWeights()
        ))

    def test_scores_with_grok(self, store, grok_factory, sample_lead, profile):
        client, endpoint = grok_factory(GROK_SCORE)
        service = ScoringService(store, client)

        result = service.score_lead(sample_lead["id"], profile["id"])

        assert result["score"] == 86
        assert result["fallback"] is False
        assert result["rationale"] == GROK_SCORE["rationale"]
        assert result["profile_used"] == "High-Growth SaaS"
        assert result["confidence"] == pytest.approx(0.8)
        assert endpoint.body()["temperature"] == 0.1
        assert endpoint.body()["max_tokens"] == 500

    def test_persists_score_and_interaction(self, store, grok_factory, lead_service, sample_lead, profile):
        client, _ = grok_factory(GROK_SCORE)

        ScoringService(store, client).score_lead(sample_lead["id"], profile["id"])

        lead = lead_service.get_lead(sample_lead["id"])
        assert lead["score"] == 86
        assert lead["score_breakdown"]["title_fit"] == 90.0
        timeline = lead_service.list_interactions(sample_lead["id"])
        assert timeline[0]["type"] == "lead_scored"
        assert timeline[0]["payload"]["final_score"] == 86

    def test_rules_adjust_score(self, store, grok_factory, sample_lead):
        client, _ = grok_factory(GROK_SCORE)
        service = ScoringService(store, client)
        profile = service.create_profile(ScoringProfileCreate(
            name="Strict",
            weights=ScoringWeights(),
            rules=ScoringRules(must_have=["title includes CTO"])
        ))

        result = service.score_lead(sample_lead["id"], profile["id"])

        assert result["score"] == 43

    def test_falls_back_when_grok_fails(self, store, grok_factory, sample_lead, profile):
        client, _ = grok_factory(server_error)

        result = ScoringService(store, client).score_lead(sample_lead["id"], profile["id"])

        assert result["fallback"] is True
        assert result["score"] == 50
        assert result["rationale"] == FALLBACK_RATIONALE
        assert set(result["factors"].values()) == {50.0}

    def test_falls_back_without_client(self, store, sample_lead, profile):
        result = ScoringService(store, None).score_lead(sample_lead["id"], profile["id"])

        assert result["fallback"] is True
        assert result["score"] == 50

    def test_existing_score_returned_without_force(self, store, grok_factory, sample_lead, profile):
        client, endpoint = grok_factory(GROK_SCORE)
        service = ScoringService(store, client)
        service.score_lead(sample_lead["id"], profile["id"])

        again = service.score_lead(sample_lead["id"], profile["id"])

        assert again["rationale"] == EXISTING_SCORE_RATIONALE
        assert again["score"] == 86
        assert endpoint.call_count == 1

    def test_force_rescore_calls_grok_again(self, store, grok_factory, sample_lead, profile):
        client, endpoint = grok_factory(GROK_SCORE)
        service = ScoringService(store, client)
        service.score_lead(sample_lead["id"], profile["id"])

        service.score_lead(sample_lead["id"], profile["id"], force_rescore=True)

        assert endpoint.call_count == 2

    def test_unknown_profile(self, store, sample_lead):
        with pytest.raises(NotFoundError):
            ScoringService(store).score_lead(sample_lead["id"], "missing")

    def test_unknown_lead(self, store, profile):
        with pytest.raises(NotFoundError):
            ScoringService(store).score_lead("missing", profile["id"])


class TestProfiles:
    """Tests for scoring profile CRUD."""

    def test_create_and_update_profile(self, store):
        service = ScoringService(store)
        profile = service.create_profile(ScoringProfileCreate(
            name="Enterprise Focus",
            weights=ScoringWeights(industry_fit=0.25, size_fit=0.4, title_fit=0.25, tech_signals=0.1),
            rules=ScoringRules(must_have=["size > 500"])
        ))

        updated = service.update_profile(profile["id"], ScoringProfileUpdate(name="Enterprise"))

        assert updated["name"] == "Enterprise"
        assert updated["weights"]["size_fit"] == 0.4
        assert updated["rules"] == {"must_have": ["size > 500"]}
        assert [p["id"] for p in service.list_profiles()] == [profile["id"]]

    def test_delete_profile(self, store):
        service = ScoringService(store)
        profile = service.create_profile(ScoringProfileCreate(name="Temp", weights=ScoringWeights()))

        service.delete_profile(profile["id"])

        with pytest.raises(NotFoundError):
            service.get_profile(profile["id"])
