"""
LLM evaluation harness.

Runs stored cases through Grok, grades the output per criterion and keeps
every run for comparison across prompts and models.

Expected outputs may use descriptor leaves such as
{"type": "number", "min": 70, "max": 100} or {"type": "string", "minLength": 20};
other leaves are compared literally.
"""

import json
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple

from config import settings
from integrations import GrokClient, GrokClientError, parse_json
from models import EvalCase, EvalRun, EvalCategory
from models.eval_schemas import EvalCaseCreate, EvalOptions
from observability import trace_logger
from services.errors import NotFoundError, ValidationError
from services.prompts import (
    QUALIFICATION_PROMPT, QUALIFICATION_SYSTEM_PROMPT,
    OUTREACH_PROMPT, OUTREACH_SYSTEM_PROMPT,
    QUALIFICATION_VERDICT_PROMPT, JUDGE_PROMPT,
    render_prompt, messages_for
)
from storage import CRMStore


CONTAINS_FLOOR = 0.8
DEFAULT_BODY_MIN_LENGTH = 10
DEFAULT_TEMPLATE_BODY = "Hi {{firstName}}, I'd love to show you how {{companyName}} could speed up qualification."

_DESCRIPTOR_TYPES = {"number", "string", "boolean", "object", "array"}
_FIRST_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


# Descriptor matching

def is_descriptor(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") in _DESCRIPTOR_TYPES


def matches_descriptor(actual: Any, descriptor: Dict[str, Any]) -> bool:
    """Check a value against a {type, min, max, minLength, value, allowedValues, contains} descriptor."""
    kind = descriptor["type"]
    if kind == "number":
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            return False
        if "min" in descriptor and actual < descriptor["min"]:
            return False
        if "max" in descriptor and actual > descriptor["max"]:
            return False
    elif kind == "string":
        if not isinstance(actual, str):
            return False
        if "minLength" in descriptor and len(actual) < descriptor["minLength"]:
            return False
        if "contains" in descriptor and str(descriptor["contains"]).lower() not in actual.lower():
            return False
    elif kind == "boolean":
        if not isinstance(actual, bool):
            return False
    elif kind == "object":
        if not isinstance(actual, dict):
            return False
    elif kind == "array":
        if not isinstance(actual, list):
            return False

    if "value" in descriptor and actual != descriptor["value"]:
        return False
    if "allowedValues" in descriptor and actual not in descriptor["allowedValues"]:
        return False
    return True


def structurally_equal(actual: Any, expected: Any) -> bool:
    """Deep equality in which descriptor leaves match by constraint."""
    if is_descriptor(expected):
        return matches_descriptor(actual, expected)
    if isinstance(expected, dict):
        if not isinstance(actual, dict) or set(actual) != set(expected):
            return False
        return all(structurally_equal(actual[key], value) for key, value in expected.items())
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(actual) != len(expected):
            return False
        return all(structurally_equal(a, e) for a, e in zip(actual, expected))
    return actual == expected


# Validators: each returns (score 0..1, reasoning, details)

def validate_exact_match(actual: Any, expected: Any) -> Tuple[float, str, Dict[str, Any]]:
    matched = structurally_equal(actual, expected)
    return (1.0 if matched else 0.0), ("Exact match" if matched else "Output does not match expected exactly"), {}


def validate_contains(actual: Any, expected: Any) -> Tuple[float, str, Dict[str, Any]]:
    """Expected keys present (and descriptor `contains` satisfied); scores never drop below the floor."""
    if isinstance(expected, str):
        found = expected.lower() in json.dumps(actual, default=str).lower()
        return (
            1.0 if found else CONTAINS_FLOOR,
            "Contains expected content" if found else "Expected content not found",
            {"missing": [] if found else [expected]},
        )

    expected = expected if isinstance(expected, dict) else {}
    actual_dict = actual if isinstance(actual, dict) else {}
    missing = []
    for key, value in expected.items():
        if key not in actual_dict:
            missing.append(key)
        elif is_descriptor(value) and "contains" in value and not matches_descriptor(actual_dict[key], value):
            missing.append(key)

    if not expected:
        return 1.0, "No expected elements", {"missing": []}
    score = 1.0 if not missing else max(CONTAINS_FLOOR, 1 - len(missing) / len(expected))
    reasoning = "Contains all expected elements" if not missing else f"Missing: {', '.join(missing)}"
    return score, reasoning, {"missing": missing}


def validate_regex(actual: Any, pattern: Optional[str]) -> Tuple[float, str, Dict[str, Any]]:
    if not pattern:
        return 0.0, "Regex validation requires a pattern", {}
    text = actual if isinstance(actual, str) else json.dumps(actual, default=str)
    try:
        matched = re.search(pattern, text) is not None
    except re.error as e:
        return 0.0, f"Invalid regex pattern: {e}", {}
    return (1.0 if matched else 0.0), ("Regex pattern matched" if matched else "Regex pattern did not match"), {}


def validate_custom(name: str, actual: Any, expected: Any) -> Tuple[float, str, Dict[str, Any]]:
    """Named checks: score_range, body_length, json_format; otherwise non-empty output."""
    expected = expected if isinstance(expected, dict) else {}

    if name == "score_range":
        score = actual.get("score") if isinstance(actual, dict) else actual
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return 0.0, "No numeric score in output", {}
        descriptor = expected.get("score") if is_descriptor(expected.get("score")) else {"type": "number", "min": 0, "max": 100}
        if matches_descriptor(score, descriptor):
            return 1.0, f"Score {score} within expected range", {}
        if 0 <= score <= 100:
            return 0.5, f"Score {score} outside expected range", {}
        return 0.0, f"Score {score} outside 0..100", {}

    if name == "body_length":
        body = actual.get("body") if isinstance(actual, dict) else actual
        if not isinstance(body, str):
            return 0.0, "No message body in output", {}
        descriptor = expected.get("body") if is_descriptor(expected.get("body")) else {}
        min_length = descriptor.get("minLength", DEFAULT_BODY_MIN_LENGTH)
        if len(body) >= min_length:
            return 1.0, f"Body length {len(body)} meets minimum {min_length}", {}
        return round(len(body) / min_length, 4), f"Body length {len(body)} below minimum {min_length}", {}

    if name == "json_format":
        if isinstance(actual, (dict, list)):
            return 1.0, "Output is a JSON value", {}
        if isinstance(actual, str) and parse_json(actual) is not None:
            return 1.0, "Output is a JSON string", {}
        return 0.0, "Output is not valid JSON", {}

    present = actual not in (None, "", {}, [])
    return (1.0 if present else 0.0), ("Output present" if present else "Output is empty"), {}


def weighted_overall(scores: List[Dict[str, Any]], weights: List[float]) -> float:
    if not scores:
        return 0.0
    total_weight = sum(weights)
    if total_weight <= 0:
        return sum(s["score"] for s in scores) / len(scores)
    return sum(s["score"] * w for s, w in zip(scores, weights)) / total_weight


def summarize_runs(runs: List[Dict[str, Any]], threshold: float) -> Dict[str, Any]:
    """Totals, per-category averages, most-failed criteria and recommendations."""
    total = len(runs)
    passed = sum(1 for run in runs if run["passed"])
    failed = total - passed
    average = sum(run["overall_score"] for run in runs) / total if total else 0.0

    by_category: Dict[str, Dict[str, Any]] = {}
    for run in runs:
        category = (run.get("metadata") or {}).get("category", "unknown")
        stats = by_category.setdefault(category, {"count": 0, "total": 0.0, "passed_count": 0})
        stats["count"] += 1
        stats["total"] += run["overall_score"]
        if run["passed"]:
            stats["passed_count"] += 1
    scores_by_category = {
        category: {
            "count": stats["count"],
            "average_score": stats["total"] / stats["count"],
            "passed_count": stats["passed_count"],
        }
        for category, stats in by_category.items()
    }

    criteria: Dict[str, Dict[str, int]] = {}
    for run in runs:
        for score in run["scores"]:
            entry = criteria.setdefault(score["criterion"], {"failed": 0, "total": 0})
            entry["total"] += 1
            if not score["passed"]:
                entry["failed"] += 1
    top_issues = sorted(
        (
            {"criterion": name, "failure_rate": entry["failed"] / entry["total"], "count": entry["failed"]}
            for name, entry in criteria.items()
        ),
        key=lambda issue: issue["failure_rate"],
        reverse=True
    )[:5]

    recommendations = []
    if total and average < threshold:
        recommendations.append(
            "Overall performance is below target. Consider reviewing prompt engineering and test case design."
        )
    if failed > total * 0.3:
        recommendations.append(
            "High failure rate detected. Validate test case expectations and AI model configuration."
        )
    if top_issues and top_issues[0]["failure_rate"] > 0.5:
        recommendations.append(
            f"Focus on improving {top_issues[0]['criterion']} criteria - high failure rate detected."
        )

    return {
        "total_tests": total,
        "passed_tests": passed,
        "failed_tests": failed,
        "average_score": average,
        "scores_by_category": scores_by_category,
        "top_issues": top_issues,
        "recommendations": recommendations,
    }


class EvalService:
    """Evaluation cases, runs and batches."""

    def __init__(
        self,
        store: CRMStore,
        grok_client: Optional[GrokClient] = None,
        pass_threshold: Optional[float] = None
    ):
        self.store = store
        self.grok_client = grok_client
        self.pass_threshold = settings.eval_pass_threshold if pass_threshold is None else pass_threshold

    # Cases

    def create_case(self, data: EvalCaseCreate) -> Dict[str, Any]:
        with self.store.get_session() as session:
            case = EvalCase(
                name=data.name,
                description=data.description,
                category=EvalCategory(data.category),
                input=data.input,
                expected_output=data.expected_output,
                criteria=[criterion.model_dump(exclude_none=True) for criterion in data.criteria],
                metadata_=data.metadata
            )
            session.add(case)
            session.flush()
            result = case.to_dict()

        trace_logger.record_changed(entity="eval_case", entity_id=result["id"], operation="create")
        return result

    def list_cases(self, page: int = 1, limit: int = 20, category: Optional[EvalCategory] = None) -> Dict[str, Any]:
        with self.store.get_session() as session:
            query = session.query(EvalCase)
            if category:
                query = query.filter(EvalCase.category == EvalCategory(category))
            total = query.count()
            cases = (
                query.order_by(EvalCase.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {"cases": [case.to_dict() for case in cases], "total": total, "page": page, "limit": limit}

    def get_case(self, case_id: str) -> Dict[str, Any]:
        with self.store.get_session() as session:
            return self._get_case(session, case_id).to_dict()

    def delete_case(self, case_id: str):
        with self.store.get_session() as session:
            session.delete(self._get_case(session, case_id))

        trace_logger.record_changed(entity="eval_case", entity_id=case_id, operation="delete")

    # Runs

    def run_case(self, case_id: str, options: Optional[EvalOptions] = None) -> Dict[str, Any]:
        """Execute one case, grade it and store the run."""
        options = options or EvalOptions()
        case = self.get_case(case_id)
        start = time.perf_counter()
        trace_logger.info("Running evaluation case", case_name=case["name"], category=case["category"])

        actual_output, prompt_used, model_used = self._execute(case, options)
        scores = [self._grade(criterion, case, actual_output) for criterion in case["criteria"]]
        overall = weighted_overall(scores, [criterion.get("weight", 1.0) for criterion in case["criteria"]])
        passed = overall >= self.pass_threshold
        duration_ms = int((time.perf_counter() - start) * 1000)

        with self.store.get_session() as session:
            run = EvalRun(
                case_id=case["id"],
                case_name=case["name"],
                input=case["input"],
                expected_output=case["expected_output"],
                actual_output=actual_output,
                scores=scores,
                overall_score=overall,
                passed=passed,
                duration_ms=duration_ms,
                model_used=model_used,
                prompt_used=prompt_used,
                metadata_={
                    "category": case["category"],
                    "criteria_count": len(case["criteria"]),
                    "temperature": options.temperature,
                    "max_tokens": options.max_tokens,
                }
            )
            session.add(run)
            session.flush()
            result = run.to_dict()

        trace_logger.info(
            "Evaluation case completed",
            case_name=case["name"],
            overall_score=overall,
            passed=passed,
            duration_ms=duration_ms
        )
        return result

    def run_batch(
        self,
        name: str,
        case_ids: List[str],
        options: Optional[EvalOptions] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        started_at = datetime.now(timezone.utc)
        trace_logger.info("Running evaluation batch", batch_name=name, case_count=len(case_ids))

        with self.store.get_session() as session:
            found = [row.id for row in session.query(EvalCase.id).filter(EvalCase.id.in_(case_ids)).all()]
        if not found:
            raise ValidationError("No test cases found for batch", {"case_ids": case_ids})

        ordered = [case_id for case_id in case_ids if case_id in found]
        results = [self.run_case(case_id, options) for case_id in ordered]
        summary = summarize_runs(results, self.pass_threshold)

        trace_logger.info(
            "Evaluation batch completed",
            batch_name=name,
            total_tests=summary["total_tests"],
            passed_tests=summary["passed_tests"]
        )

        return {
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "results": results,
            "summary": summary,
            "started_at": started_at,
            "completed_at": datetime.now(timezone.utc),
            "status": "completed",
        }

    def list_runs(self, page: int = 1, limit: int = 20, case_id: Optional[str] = None) -> Dict[str, Any]:
        with self.store.get_session() as session:
            query = session.query(EvalRun)
            if case_id:
                query = query.filter(EvalRun.case_id == case_id)
            total = query.count()
            runs = (
                query.order_by(EvalRun.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {"runs": [run.to_dict() for run in runs], "total": total, "page": page, "limit": limit}

    def get_run(self, run_id: str) -> Dict[str, Any]:
        with self.store.get_session() as session:
            run = session.query(EvalRun).filter(EvalRun.id == run_id).first()
            if not run:
                raise NotFoundError("Eval run", run_id)
            return run.to_dict()

    def get_health_status(self) -> Dict[str, Any]:
        with self.store.get_session() as session:
            case_count = session.query(EvalCase).count()
            run_count = session.query(EvalRun).count()
        return {
            "status": "healthy",
            "case_count": case_count,
            "run_count": run_count,
            "pass_threshold": self.pass_threshold,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # Execution

    def _execute(self, case: Dict[str, Any], options: EvalOptions) -> Tuple[Any, str, str]:
        """Run the case's category prompt; client failures become an error output."""
        model = options.model or (self.grok_client.model if self.grok_client else settings.grok_model)
        category = case["category"]
        case_input = case["input"]

        if category == EvalCategory.SCORING.value:
            prompt_used = "Lead scoring prompt"
            messages = messages_for(
                QUALIFICATION_SYSTEM_PROMPT,
                render_prompt(
                    QUALIFICATION_PROMPT,
                    lead=case_input.get("lead", case_input),
                    scoringProfile=case_input.get("scoring_profile", {})
                )
            )
        elif category == EvalCategory.OUTREACH.value:
            prompt_used = "Outreach generation prompt"
            messages = messages_for(
                OUTREACH_SYSTEM_PROMPT,
                render_prompt(
                    OUTREACH_PROMPT,
                    lead=case_input.get("lead", case_input),
                    templateBody=case_input.get("template_body", DEFAULT_TEMPLATE_BODY)
                )
            )
        elif category == EvalCategory.QUALIFICATION.value:
            prompt_used = "Lead qualification prompt"
            messages = messages_for(
                QUALIFICATION_SYSTEM_PROMPT,
                render_prompt(QUALIFICATION_VERDICT_PROMPT, lead=case_input.get("lead", case_input))
            )
        else:
            prompt_used = "General AI test prompt"
            messages = [{"role": "user", "content": case_input.get("prompt") or "Say hello world"}]

        try:
            if self.grok_client is None:
                raise GrokClientError("Grok client is not configured")
            if category == EvalCategory.GENERAL.value:
                response = self.grok_client.chat(
                    messages,
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                    model=options.model
                )
                output = {"response": response.content}
            else:
                output = self.grok_client.chat_json(
                    messages,
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                    model=options.model
                )
        except GrokClientError as e:
            trace_logger.error_occurred(
                error_type="eval_execution_error",
                error_message=str(e),
                context={"case_id": case["id"], "category": category}
            )
            output = {"error": str(e), "error_type": type(e).__name__}

        return output, prompt_used, model

    def _grade(self, criterion: Dict[str, Any], case: Dict[str, Any], actual: Any) -> Dict[str, Any]:
        validator = criterion.get("validator", "custom")
        expected = case["expected_output"]

        if validator == "exact_match":
            score, reasoning, details = validate_exact_match(actual, expected)
        elif validator == "contains":
            score, reasoning, details = validate_contains(actual, expected)
        elif validator == "regex":
            score, reasoning, details = validate_regex(actual, criterion.get("pattern"))
        elif validator == "llm_judge":
            score, reasoning, details = self._judge(criterion, actual, expected)
        else:
            score, reasoning, details = validate_custom(criterion["name"], actual, expected)

        score = max(0.0, min(1.0, float(score)))
        return {
            "criterion": criterion["name"],
            "score": score,
            "passed": score >= self.pass_threshold,
            "reasoning": reasoning,
            "details": details or None,
        }

    def _judge(self, criterion: Dict[str, Any], actual: Any, expected: Any) -> Tuple[float, str, Dict[str, Any]]:
        """Ask Grok to grade the output; a non-JSON verdict is read as its first number."""
        prompt = render_prompt(
            JUDGE_PROMPT,
            criterion=criterion.get("description") or criterion["name"],
            expected=expected,
            actual=actual
        )
        try:
            if self.grok_client is None:
                raise GrokClientError("Grok client is not configured")
            response = self.grok_client.chat(
                [{"role": "user", "content": prompt}],
                temperature=0.1,
                max_tokens=1500
            )
        except GrokClientError as e:
            trace_logger.error_occurred(
                error_type="llm_judge_error",
                error_message=str(e),
                context={"criterion": criterion["name"]}
            )
            return 0.0, f"LLM judge failed: {e}", {}

        verdict = parse_json(response.content)
        if isinstance(verdict, dict) and isinstance(verdict.get("score"), (int, float)):
            return float(verdict["score"]), str(verdict.get("reasoning") or "No reasoning provided"), {}

        match = _FIRST_NUMBER_RE.search(response.content)
        if not match:
            return 0.5, f"Unparseable judge verdict: {response.content[:200]}", {}
        value = float(match.group(1))
        # Bare numbers above 1 are read as a 0-10 rating
        score = value / 10 if value > 1 else value
        return score, f"Parsed from text: {response.content[:200]}", {}

    def _get_case(self, session, case_id: str) -> EvalCase:
        case = session.query(EvalCase).filter(EvalCase.id == case_id).first()
        if not case:
            raise NotFoundError("Eval case", case_id)
        return case
