"""
Unit tests for the evaluation harness.

Tests cover:
- Descriptor matching and each validator
- Weighted overall score and batch summaries
- EvalService case CRUD, single runs and batches
"""

import pytest

from models import EvalCategory
from models.eval_schemas import EvalCaseCreate, EvalCriterion, EvalOptions
from services import EvalService, NotFoundError, ValidationError
from services.eval_service import (
    matches_descriptor, structurally_equal, summarize_runs,
    validate_contains, validate_custom, validate_exact_match, validate_regex, weighted_overall
)


def general_case(**overrides) -> EvalCaseCreate:
    fields = {
        "name": "General AI - Hello World",
        "description": "Basic AI response test",
        "category": EvalCategory.GENERAL,
        "input": {"prompt": "Say hello world in a friendly way"},
        "expected_output": {"response": {"type": "string", "contains": "hello"}},
        "criteria": [
            EvalCriterion(name="contains_hello", description="Mentions hello", weight=0.6, validator="contains"),
            EvalCriterion(name="friendly_tone", description="Response should be friendly", weight=0.4,
                          validator="llm_judge"),
        ],
    }
    fields.update(overrides)
    return EvalCaseCreate(**fields)


def scoring_case() -> EvalCaseCreate:
    return EvalCaseCreate(
        name="Lead Scoring - SaaS VP Sales",
        description="Test lead scoring for a SaaS company VP of Sales",
        category=EvalCategory.SCORING,
        input={
            "full_name": "John Smith",
            "title": "VP of Sales",
            "company": {"name": "TechCorp Solutions", "industry": "SaaS", "size": 250},
        },
        expected_output={
            "score": {"type": "number", "min": 70, "max": 100},
            "factors": {"type": "object"},
            "rationale": {"type": "string", "minLength": 20},
        },
        criteria=[
            EvalCriterion(name="score_range", weight=0.4, validator="custom"),
            EvalCriterion(name="structure", weight=0.3, validator="exact_match"),
            EvalCriterion(name="json_format", weight=0.3, validator="custom"),
        ],
    )


class TestDescriptors:
    """Tests for descriptor matching."""

    @pytest.mark.parametrize("actual,descriptor,expected", [
        (85, {"type": "number", "min": 70, "max": 100}, True),
        (65, {"type": "number", "min": 70}, False),
        (True, {"type": "number"}, False),
        ("a long enough rationale", {"type": "string", "minLength": 10}, True),
        ("short", {"type": "string", "minLength": 10}, False),
        ("Hello World", {"type": "string", "contains": "hello"}, True),
        (False, {"type": "boolean", "value": False}, True),
        ("med", {"type": "string", "allowedValues": ["low", "med", "high"]}, True),
        ("extreme", {"type": "string", "allowedValues": ["low", "med", "high"]}, False),
        ([1], {"type": "array"}, True),
        ({}, {"type": "array"}, False),
    ])
    def test_matches_descriptor(self, actual, descriptor, expected):
        assert matches_descriptor(actual, descriptor) is expected

    def test_structural_equality_with_descriptors(self):
        expected = {"score": {"type": "number", "min": 0, "max": 100}, "tags": ["a", "b"]}

        assert structurally_equal({"score": 42, "tags": ["a", "b"]}, expected) is True
        assert structurally_equal({"score": 42, "tags": ["a"]}, expected) is False
        assert structurally_equal({"score": 42, "tags": ["a", "b"], "extra": 1}, expected) is False


class TestValidators:
    """Tests for the individual validators."""

    def test_exact_match(self):
        assert validate_exact_match({"a": 1}, {"a": 1})[0] == 1.0
        assert validate_exact_match({"a": 2}, {"a": 1})[0] == 0.0

    def test_contains_all_keys(self):
        score, _, details = validate_contains({"subject": "Hi", "body": "Hello"}, {"subject": {}, "body": {}})

        assert score == 1.0
        assert details["missing"] == []

    def test_contains_has_floor(self):
        score, reasoning, details = validate_contains({}, {"subject": {}, "body": {}})

        assert score == 0.8
        assert details["missing"] == ["subject", "body"]
        assert reasoning == "Missing: subject, body"

    def test_contains_checks_descriptor_substring(self):
        expected = {"response": {"type": "string", "contains": "hello"}}

        assert validate_contains({"response": "Hello there"}, expected)[0] == 1.0
        assert validate_contains({"response": "Goodbye"}, expected)[2]["missing"] == ["response"]

    def test_regex(self):
        assert validate_regex("Subject: Quick idea", r"^Subject:")[0] == 1.0
        assert validate_regex({"body": "no"}, r"\d{3}")[0] == 0.0
        assert validate_regex("anything", None)[0] == 0.0
        assert "Invalid regex" in validate_regex("x", "(")[1]

    @pytest.mark.parametrize("actual,expected_score", [
        ({"score": 85}, 1.0),
        ({"score": 40}, 0.5),
        ({"score": 140}, 0.0),
        ({"rationale": "no score"}, 0.0),
    ])
    def test_custom_score_range(self, actual, expected_score):
        expected = {"score": {"type": "number", "min": 70, "max": 100}}

        assert validate_custom("score_range", actual, expected)[0] == expected_score

    def test_custom_body_length(self):
        expected = {"body": {"type": "string", "minLength": 50}}

        assert validate_custom("body_length", {"body": "x" * 60}, expected)[0] == 1.0
        assert validate_custom("body_length", {"body": "x" * 25}, expected)[0] == 0.5

    def test_custom_json_format(self):
        assert validate_custom("json_format", {"a": 1}, {})[0] == 1.0
        assert validate_custom("json_format", '{"a": 1}', {})[0] == 1.0
        assert validate_custom("json_format", "plain text", {})[0] == 0.0

    def test_custom_default_checks_presence(self):
        assert validate_custom("anything", {"a": 1}, {})[0] == 1.0
        assert validate_custom("anything", {}, {})[0] == 0.0


class TestScoring:
    """Tests for aggregation helpers."""

    def test_weighted_overall(self):
        scores = [{"score": 1.0}, {"score": 0.5}]

        assert weighted_overall(scores, [0.6, 0.4]) == pytest.approx(0.8)
        assert weighted_overall(scores, [0.0, 0.0]) == pytest.approx(0.75)
        assert weighted_overall([], []) == 0.0

    def test_summarize_runs(self):
        runs = [
            {"passed": True, "overall_score": 0.9, "metadata": {"category": "general"},
             "scores": [{"criterion": "tone", "passed": True}]},
            {"passed": False, "overall_score": 0.3, "metadata": {"category": "scoring"},
             "scores": [{"criterion": "tone", "passed": False}, {"criterion": "range", "passed": False}]},
        ]

        summary = summarize_runs(runs, threshold=0.7)

        assert summary["total_tests"] == 2
        assert summary["passed_tests"] == 1
        assert summary["failed_tests"] == 1
        assert summary["average_score"] == pytest.approx(0.6)
        assert summary["scores_by_category"]["scoring"] == {"count": 1, "average_score": 0.3, "passed_count": 0}
        assert summary["top_issues"][0] == {"criterion": "range", "failure_rate": 1.0, "count": 1}
        assert len(summary["recommendations"]) == 3


class TestEvalService:
    """Tests for EvalService."""

    def test_case_crud(self, store):
        service = EvalService(store)
        case = service.create_case(general_case())

        assert service.get_case(case["id"])["criteria"][0]["validator"] == "contains"
        assert service.list_cases(category=EvalCategory.GENERAL)["total"] == 1
        assert service.list_cases(category=EvalCategory.SCORING)["total"] == 0

        service.delete_case(case["id"])
        with pytest.raises(NotFoundError):
            service.get_case(case["id"])

    def test_run_general_case(self, store, grok_factory):
        client, endpoint = grok_factory(
            "Hello world! Great to meet you.",
            {"score": 0.9, "reasoning": "Warm and friendly"}
        )
        service = EvalService(store, client)
        case = service.create_case(general_case())

        run = service.run_case(case["id"], EvalOptions(temperature=0.2, max_tokens=200))

        assert run["actual_output"] == {"response": "Hello world! Great to meet you."}
        assert [s["score"] for s in run["scores"]] == [1.0, 0.9]
        assert run["overall_score"] == pytest.approx(0.96)
        assert run["passed"] is True
        assert run["model_used"] == "grok-4-0709"
        assert run["prompt_used"] == "General AI test prompt"
        assert endpoint.body(0)["temperature"] == 0.2
        assert endpoint.body(0)["messages"] == [{"role": "user", "content": "Say hello world in a friendly way"}]
        assert endpoint.call_count == 2

    def test_judge_text_verdict_is_parsed(self, store, grok_factory):
        client, _ = grok_factory("hello!", "I'd rate this 8 out of 10.")
        service = EvalService(store, client)
        case = service.create_case(general_case())

        run = service.run_case(case["id"])

        assert run["scores"][1]["score"] == pytest.approx(0.8)

    def test_run_scoring_case(self, store, grok_factory):
        output = {
            "score": 88,
            "factors": {"industry_fit": 90, "size_fit": 80, "title_fit": 95, "tech_signals": 85},
            "rationale": "Strong SaaS fit with a sales leader",
        }
        client, endpoint = grok_factory(output)
        service = EvalService(store, client)
        case = service.create_case(scoring_case())

        run = service.run_case(case["id"])

        assert run["actual_output"] == output
        assert run["overall_score"] == pytest.approx(1.0)
        assert run["passed"] is True
        assert endpoint.body()["response_format"] == {"type": "json_object"}
        assert "John Smith" in endpoint.body()["messages"][-1]["content"]

    def test_client_failure_is_recorded_as_output(self, store):
        service = EvalService(store, None)
        case = service.create_case(general_case())

        run = service.run_case(case["id"])

        assert run["actual_output"]["error_type"] == "GrokClientError"
        assert run["passed"] is False
        assert run["scores"][1]["score"] == 0.0

    def test_list_and_get_runs(self, store, grok_factory):
        client, _ = grok_factory("hello", {"score": 1, "reasoning": "ok"})
        service = EvalService(store, client)
        case = service.create_case(general_case())
        run = service.run_case(case["id"])

        assert service.get_run(run["id"])["case_name"] == case["name"]
        assert service.list_runs(case_id=case["id"])["total"] == 1
        assert service.list_runs(case_id="other")["total"] == 0
        with pytest.raises(NotFoundError):
            service.get_run("missing")

    def test_batch_summary(self, store, grok_factory):
        client, _ = grok_factory("hello", {"score": 1, "reasoning": "ok"})
        service = EvalService(store, client)
        first = service.create_case(general_case())
        second = service.create_case(general_case(name="Second"))

        batch = service.run_batch("Nightly", [first["id"], "unknown", second["id"]], description="All cases")

        assert batch["status"] == "completed"
        assert [r["case_id"] for r in batch["results"]] == [first["id"], second["id"]]
        assert batch["summary"]["total_tests"] == 2
        assert batch["summary"]["passed_tests"] == 2
        assert batch["summary"]["scores_by_category"]["general"]["count"] == 2

    def test_batch_without_known_cases(self, store):
        with pytest.raises(ValidationError):
            EvalService(store).run_batch("Empty", ["missing"])

    def test_custom_pass_threshold(self, store, grok_factory):
        client, _ = grok_factory("hello", {"score": 0.9, "reasoning": "ok"})
        service = EvalService(store, client, pass_threshold=0.99)
        case = service.create_case(general_case())

        assert service.run_case(case["id"])["passed"] is False
