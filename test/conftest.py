import json
import os
import tempfile

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["GROK_API_KEY"] = "test-key"
os.environ["ENABLE_BACKGROUND_JOBS"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FILE"] = os.path.join(tempfile.gettempdir(), "sdr_crm_test", "crm.log")

from typing import Any, Callable, List

import httpx
import pytest
from fastapi.testclient import TestClient

from integrations import GrokClient
from models.schemas import CompanyCreate, LeadCreate
from services import LeadService
from storage import CRMStore


MOCK_BASE_URL = "http://mock.grok/v1"


def completion_payload(content: str, model: str = "grok-4-0709", total_tokens: int = 15) -> dict:
    """Body of an OpenAI-compatible chat completion."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": total_tokens - 10, "total_tokens": total_tokens},
    }


def read_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


def server_error(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"error": {"message": "upstream exploded"}})


class MockGrokEndpoint:
    """
    Replays queued responses for the chat-completion endpoint.

    Each item is a string (returned as completion content), a dict (returned as
    JSON-encoded content), an httpx.Response, or a callable taking the request.
    The last item repeats once the queue is exhausted.
    """

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if callable(item):
            return item(request)
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, dict):
            item = json.dumps(item)
        return httpx.Response(200, json=completion_payload(item))


@pytest.fixture
def store() -> CRMStore:
    """Fresh in-memory database per test."""
    return CRMStore("sqlite:///:memory:")


@pytest.fixture
def grok_factory() -> Callable[..., tuple]:
    """Build a GrokClient whose HTTP traffic goes to a MockGrokEndpoint."""

    def factory(*responses, **kwargs):
        endpoint = MockGrokEndpoint(list(responses) or [""])
        kwargs.setdefault("max_retries", 0)
        kwargs.setdefault("sleep", lambda seconds: None)
        kwargs.setdefault("timeout_seconds", 5.0)
        client = GrokClient(
            api_key="test-key",
            model="grok-4-0709",
            base_url=MOCK_BASE_URL,
            http_client=httpx.Client(transport=httpx.MockTransport(endpoint)),
            **kwargs
        )
        return client, endpoint

    return factory


@pytest.fixture
def lead_service(store) -> LeadService:
    return LeadService(store)


@pytest.fixture
def sample_lead(lead_service) -> dict:
    return lead_service.create_lead(LeadCreate(
        full_name="John Smith",
        title="VP of Sales",
        email="john.smith@techcorp.com",
        linkedin_url="https://linkedin.com/in/johnsmith",
        notes="Interested in improving sales efficiency",
        company=CompanyCreate(
            name="TechCorp Solutions",
            domain="techcorp.com",
            size=250,
            industry="SaaS"
        )
    ))


@pytest.fixture
def app(store):
    from api.app import app as fastapi_app
    from api.dependencies import get_store, get_grok

    fastapi_app.dependency_overrides[get_store] = lambda: store
    fastapi_app.dependency_overrides[get_grok] = lambda: None
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def api_client(app):
    with TestClient(app) as client:
        yield client
