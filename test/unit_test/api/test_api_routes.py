"""
HTTP-level tests for the FastAPI application.

Tests cover:
- Root and health endpoints
- Error envelopes for validation, not-found, conflict and unexpected failures
- Trace ID propagation
- Lead, scoring, outreach, pipeline, search, eval and dashboard routes
"""

import pytest

from api.dependencies import get_lead_service
from models.schemas import ScoringProfileCreate, ScoringWeights, MessageTemplateCreate
from services import OutreachService, ScoringService


LEAD_BODY = {
    "full_name": "Jane Doe",
    "title": "Head of Growth",
    "email": "jane@growthco.io",
    "company": {"name": "GrowthCo", "domain": "growthco.io", "size": 80, "industry": "SaaS"},
}


class TestSystemRoutes:
    """Tests for service-level endpoints."""

    def test_root(self, api_client):
        response = api_client.get("/")

        assert response.status_code == 200
        assert response.json() == {"name": "SDR CRM", "version": "1.0.0", "status": "operational"}

    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_trace_id_is_generated(self, api_client):
        response = api_client.get("/health")

        assert response.headers["X-Trace-ID"]

    def test_trace_id_is_echoed(self, api_client):
        response = api_client.get("/health", headers={"X-Trace-ID": "trace-abc"})

        assert response.headers["X-Trace-ID"] == "trace-abc"

    def test_dashboard_metrics(self, api_client, sample_lead):
        response = api_client.get("/api/dashboard/metrics")

        assert response.status_code == 200
        body = response.json()
        assert body["total_leads"] == 1
        assert body["total_companies"] == 1
        assert body["stage_counts"]["NEW"] == 1
        assert body["grok_client"] is None

    @pytest.mark.parametrize("path", [
        "/api/leads/health/status",
        "/api/scoring/health/status",
        "/api/outreach/health/status",
        "/api/pipeline/health/status",
        "/api/evals/health/status",
    ])
    def test_service_health(self, api_client, path):
        response = api_client.get(path)

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_unexpected_error_returns_500(self, app, api_client):
        def broken():
            raise RuntimeError("database on fire")

        app.dependency_overrides[get_lead_service] = broken

        response = api_client.get("/api/leads", headers={"X-Trace-ID": "trace-500"})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "trace_id": "trace-500"}
        assert response.headers["X-Trace-ID"] == "trace-500"


class TestLeadRoutes:
    """Tests for /api/leads."""

    def test_create_get_update_delete(self, api_client):
        created = api_client.post("/api/leads", json=LEAD_BODY)
        assert created.status_code == 201
        lead = created.json()
        assert lead["stage"] == "NEW"
        assert lead["company"]["name"] == "GrowthCo"

        fetched = api_client.get(f"/api/leads/{lead['id']}")
        assert fetched.json()["email"] == "jane@growthco.io"

        updated = api_client.put(f"/api/leads/{lead['id']}", json={"title": "VP of Growth"})
        assert updated.status_code == 200
        assert updated.json()["title"] == "VP of Growth"

        deleted = api_client.delete(f"/api/leads/{lead['id']}")
        assert deleted.status_code == 204
        assert api_client.get(f"/api/leads/{lead['id']}").status_code == 404

    def test_list_leads(self, api_client, sample_lead):
        response = api_client.get("/api/leads", params={"stage": "NEW"})

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["leads"][0]["id"] == sample_lead["id"]

    def test_invalid_email_is_rejected(self, api_client):
        response = api_client.post("/api/leads", json={**LEAD_BODY, "email": "not-an-email"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["details"][0]["loc"] == ["body", "email"]
        assert set(body["details"][0]) == {"loc", "msg", "type"}

    def test_missing_lead(self, api_client):
        response = api_client.get("/api/leads/missing")

        assert response.status_code == 404
        assert set(response.json()) == {"error", "details"}

    def test_duplicate_email_conflicts(self, api_client):
        api_client.post("/api/leads", json=LEAD_BODY)

        response = api_client.post("/api/leads", json=LEAD_BODY)

        assert response.status_code == 409
        assert "error" in response.json()

    def test_null_full_name_is_rejected(self, api_client, sample_lead):
        response = api_client.put(f"/api/leads/{sample_lead['id']}", json={"full_name": None})

        assert response.status_code == 400
        assert response.json()["details"][0]["loc"] == ["body", "full_name"]
        assert api_client.get(f"/api/leads/{sample_lead['id']}").json()["full_name"] == "John Smith"

    def test_null_nested_company_name_is_rejected(self, api_client, sample_lead):
        response = api_client.put(f"/api/leads/{sample_lead['id']}", json={"company": {"name": None}})

        assert response.status_code == 400
        assert response.json()["details"][0]["loc"] == ["body", "company", "name"]

    def test_null_company_name_is_rejected(self, api_client, sample_lead):
        response = api_client.put(f"/api/companies/{sample_lead['company_id']}", json={"name": None})

        assert response.status_code == 400
        assert response.json()["details"][0]["loc"] == ["body", "name"]

    def test_interactions_and_messages(self, api_client, sample_lead):
        lead_id = sample_lead["id"]

        interaction = api_client.post(
            f"/api/leads/{lead_id}/interactions", json={"type": "note", "payload": {"text": "Called"}}
        )
        message = api_client.post(f"/api/leads/{lead_id}/messages", json={"body": "Sounds good"})

        assert interaction.status_code == 201
        assert message.status_code == 201
        assert message.json()["direction"] == "inbound"
        timeline = api_client.get(f"/api/leads/{lead_id}/interactions").json()
        assert {i["type"] for i in timeline} == {"note", "reply_received"}
        assert len(api_client.get(f"/api/leads/{lead_id}/messages").json()) == 1

    def test_score_without_grok_uses_fallback(self, api_client, store, sample_lead):
        profile = ScoringService(store).create_profile(
            ScoringProfileCreate(name="Default", weights=ScoringWeights())
        )

        response = api_client.post(f"/api/leads/{sample_lead['id']}/score", json={"profile_id": profile["id"]})

        assert response.status_code == 200
        assert response.json()["fallback"] is True
        assert response.json()["score"] == 50


class TestOutreachRoutes:
    """Tests for /api/outreach."""

    def test_preview_without_grok(self, api_client, store, sample_lead):
        template = OutreachService(store).create_template(
            MessageTemplateCreate(name="Intro", body="Hi {{firstName}} at {{companyName}}")
        )

        response = api_client.post(
            "/api/outreach/preview", json={"lead_id": sample_lead["id"], "template_id": template["id"]}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["subject"] == "Follow up"
        assert body["variables"] == {"firstName": "", "companyName": ""}
        assert body["safety"]["pii_leak"] is False

    def test_null_template_body_is_rejected(self, api_client):
        template = api_client.post("/api/outreach/templates", json={"name": "Intro", "body": "Hi"}).json()

        response = api_client.put(f"/api/outreach/templates/{template['id']}", json={"body": None})

        assert response.status_code == 400
        assert response.json()["details"][0]["loc"] == ["body", "body"]

    def test_template_listing(self, api_client):
        api_client.post("/api/outreach/templates", json={"name": "Intro", "body": "Hi {{firstName}}"})

        response = api_client.get("/api/outreach/templates")

        assert [t["name"] for t in response.json()["templates"]] == ["Intro"]


class TestPipelineRoutes:
    """Tests for /api/pipeline."""

    def test_advance(self, api_client, sample_lead):
        response = api_client.post(
            f"/api/pipeline/{sample_lead['id']}/advance", json={"target_stage": "QUALIFIED"}
        )

        assert response.status_code == 200
        assert response.json()["previous_stage"] == "NEW"
        assert response.json()["stage"] == "QUALIFIED"

    def test_invalid_transition_is_400(self, api_client, sample_lead):
        response = api_client.post(
            f"/api/pipeline/{sample_lead['id']}/advance", json={"target_stage": "WON"}
        )

        assert response.status_code == 400
        assert response.json()["details"]["allowed"] == ["QUALIFIED", "LOST"]

    def test_board_and_analytics(self, api_client, sample_lead):
        board = api_client.get("/api/pipeline/board").json()
        analytics = api_client.get("/api/pipeline/analytics").json()

        assert board["NEW"][0]["id"] == sample_lead["id"]
        assert analytics["totals"]["total_leads"] == 1


class TestSearchRoutes:
    """Tests for /api/search."""

    def test_search(self, api_client, sample_lead):
        response = api_client.get("/api/search", params={"q": "smith", "type": "leads"})

        assert response.status_code == 200
        assert response.json()["results"][0]["id"] == sample_lead["id"]

    def test_bad_filters_json_is_400(self, api_client):
        response = api_client.get("/api/search", params={"q": "smith", "filters": "{not json"})

        assert response.status_code == 400
        assert response.json()["error"] == "filters must be a JSON object"

    @pytest.mark.parametrize("filters", [
        '{"stage": "BOGUS"}',
        '{"source": "cold_call"}',
        '{"min_score": "abc"}',
        '{"max_score": 150}',
        '{"min_size": "big"}',
        '{"date_from": "yesterday"}',
    ])
    def test_invalid_filter_values_are_400(self, api_client, sample_lead, filters):
        response = api_client.get("/api/search", params={"q": "smith", "type": "leads", "filters": filters})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid search filters"
        assert set(body["details"][0]) == {"loc", "msg", "type"}

    def test_valid_filter_values_are_applied(self, api_client, sample_lead):
        matching = api_client.get(
            "/api/search", params={"q": "smith", "type": "leads", "filters": '{"stage": "NEW", "min_score": "0"}'}
        )
        excluded = api_client.get(
            "/api/search", params={"q": "smith", "type": "leads", "filters": '{"stage": "WON"}'}
        )

        assert matching.json()["total"] == 1
        assert excluded.json()["total"] == 0

    def test_missing_query_is_400(self, api_client):
        assert api_client.get("/api/search").status_code == 400

    def test_suggestions(self, api_client, sample_lead):
        response = api_client.get("/api/search/suggestions", params={"q": "john"})

        assert response.json()["suggestions"][0]["text"] == "John Smith"


class TestEvalRoutes:
    """Tests for /api/evals."""

    INLINE_CASE = {
        "name": "Inline hello",
        "category": "general",
        "input": {"prompt": "Say hello"},
        "expected_output": {"response": {"type": "string", "contains": "hello"}},
        "criteria": [{"name": "contains_hello", "weight": 1.0, "validator": "contains"}],
    }

    def test_run_inline_case_stores_it(self, api_client):
        response = api_client.post("/api/evals/run", json={"case": self.INLINE_CASE})

        assert response.status_code == 200
        run = response.json()
        assert run["case_name"] == "Inline hello"
        assert run["actual_output"]["error_type"] == "GrokClientError"
        assert api_client.get("/api/evals/cases").json()["total"] == 1
        assert api_client.get(f"/api/evals/runs/{run['id']}").status_code == 200

    def test_run_requires_case(self, api_client):
        response = api_client.post("/api/evals/run", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Either case_id or case is required"
