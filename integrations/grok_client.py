"""
Grok chat-completion client.

Wraps the OpenAI-compatible Grok endpoint with:
- exponential-backoff retries (tenacity), 1s, 2s, 4s, ...
- a consecutive-failure circuit breaker owned by the client
- structured-output mode that recovers JSON from sloppy model output

SDK-level retries are disabled; the retry policy lives here.
"""

import json
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx
import openai
from openai import OpenAI
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception

from config import settings
from integrations.errors import (
    GrokClientError, GrokConfigurationError, GrokTimeoutError,
    GrokRateLimitError, GrokAPIError, GrokConnectionError,
    CircuitBreakerOpenError, StructuredOutputError
)
from observability import trace_logger, preview


STRICT_JSON_INSTRUCTION = (
    "IMPORTANT: You must respond with ONLY valid JSON. "
    "No additional text, no markdown formatting, just pure JSON."
)

_TRANSIENT = (GrokTimeoutError, GrokRateLimitError, GrokConnectionError)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_SCORE_RE = re.compile(r"(?:score|Score)[\"']?\s*:\s*(\d+)")
_RATIONALE_RE = re.compile(r"(?:rationale|Rationale)[\"']?\s*:\s*[\"']([^\"']+)[\"']")


def is_retryable(error: BaseException) -> bool:
    """Timeouts, 429s, 5xx and network failures are retried; other statuses are final."""
    if isinstance(error, _TRANSIENT):
        return True
    return isinstance(error, GrokAPIError) and error.status_code >= 500


@dataclass
class GrokResponse:
    """Completed chat response."""
    content: str
    model: str
    duration_ms: float
    usage: Dict[str, int] = field(default_factory=dict)


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker with two states.

    Closed until `threshold` failures accumulate; then Open, rejecting calls
    until `timeout_seconds` have passed since the last failure, at which point
    the count resets and calls flow again.
    """

    def __init__(
        self,
        threshold: int = 5,
        timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.threshold = threshold
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None

    def _is_open_locked(self) -> bool:
        if self.failure_count < self.threshold:
            return False
        if self._clock() - self.last_failure_time >= self.timeout_seconds:
            self.failure_count = 0
            self.last_failure_time = None
            return False
        return True

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._is_open_locked()

    def before_call(self):
        """Raise CircuitBreakerOpenError if calls are currently blocked."""
        with self._lock:
            if self._is_open_locked():
                remaining = self.timeout_seconds - (self._clock() - self.last_failure_time)
                raise CircuitBreakerOpenError(max(remaining, 0.0))

    def record_success(self):
        with self._lock:
            self.failure_count = 0
            self.last_failure_time = None

    def record_failure(self) -> bool:
        """Count a failed call. Returns True when this failure opened the breaker."""
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()
            return self.failure_count == self.threshold


def parse_json(content: Optional[str]) -> Optional[Any]:
    """Decode JSON, or None when the text is not valid JSON."""
    if not content:
        return None
    try:
        return json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return None


def extract_json(content: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Last-resort recovery of a JSON object from free text.

    Tries the outermost {...} span first, then a bare score/rationale pair.
    """
    if not content:
        return None

    match = _JSON_OBJECT_RE.search(content)
    if match:
        parsed = parse_json(match.group(0))
        if parsed is not None:
            return parsed

    score_match = _SCORE_RE.search(content)
    if score_match:
        rationale_match = _RATIONALE_RE.search(content)
        return {
            "score": int(score_match.group(1)),
            "rationale": rationale_match.group(1) if rationale_match else "Extracted from partial response",
            "factors": None,
        }

    return None


class GrokClient:
    """Resilient client for the Grok chat-completion API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        api_key = api_key or settings.grok_api_key
        if not api_key:
            raise GrokConfigurationError("GROK_API_KEY environment variable is required")

        self.model = model or settings.grok_model
        self.base_url = base_url or settings.grok_base_url
        self.timeout_seconds = timeout_seconds or settings.grok_timeout_seconds
        self.max_retries = settings.grok_max_retries if max_retries is None else max_retries
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            threshold=settings.circuit_breaker_threshold,
            timeout_seconds=settings.circuit_breaker_timeout_seconds
        )
        self._sleep = sleep

        self._client = OpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
            http_client=http_client
        )

        self._stats_lock = threading.Lock()
        self.total_requests = 0
        self.total_failures = 0
        self.total_tokens = 0

        trace_logger.info(
            "Grok client initialized",
            model=self.model,
            base_url=self.base_url,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            api_key_length=len(api_key)
        )

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.1,
        max_tokens: int = 1000,
        json_mode: bool = False,
        seed: Optional[int] = None,
        model: Optional[str] = None
    ) -> GrokResponse:
        """
        Send a chat completion and return the response text.

        Raises CircuitBreakerOpenError without any network call while the
        breaker is open; otherwise the last classified error once retries
        are exhausted.
        """
        self.circuit_breaker.before_call()

        request = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if seed is not None:
            request["seed"] = seed
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        with self._stats_lock:
            self.total_requests += 1

        try:
            response = self._send_with_retries(request)
        except GrokClientError:
            with self._stats_lock:
                self.total_failures += 1
            if self.circuit_breaker.record_failure():
                trace_logger.circuit_breaker_opened(
                    failure_count=self.circuit_breaker.failure_count,
                    timeout_seconds=self.circuit_breaker.timeout_seconds
                )
            raise

        self.circuit_breaker.record_success()
        with self._stats_lock:
            self.total_tokens += response.usage.get("total_tokens", 0)
        return response

    def chat_json(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.1,
        max_tokens: int = 1000,
        seed: Optional[int] = None,
        model: Optional[str] = None
    ) -> Any:
        """
        Request JSON output and decode it.

        A non-JSON reply triggers exactly one retry with a strict-JSON
        instruction appended; if that reply is still not JSON, an object is
        recovered from it where possible.
        """
        response = self.chat(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
            seed=seed,
            model=model
        )
        parsed = parse_json(response.content)
        if parsed is not None:
            return parsed

        trace_logger.warning(
            "Non-JSON structured output, retrying with strict instruction",
            response_length=len(response.content)
        )

        strict_messages = list(messages) + [{"role": "user", "content": STRICT_JSON_INSTRUCTION}]
        retry = self.chat(
            strict_messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
            seed=seed,
            model=model
        )
        parsed = parse_json(retry.content)
        if parsed is not None:
            return parsed

        extracted = extract_json(retry.content)
        if extracted is not None:
            trace_logger.warning("Recovered JSON from partial structured output")
            return extracted

        trace_logger.error_occurred(
            error_type="structured_output_error",
            error_message="Failed to parse JSON after strict retry",
            context={"response_length": len(retry.content)}
        )
        raise StructuredOutputError("Failed to parse JSON after strict retry", retry.content)

    def get_usage_stats(self) -> Dict[str, Any]:
        """Counters for health endpoints."""
        with self._stats_lock:
            return {
                "failure_count": self.circuit_breaker.failure_count,
                "circuit_open": self.circuit_breaker.is_open,
                "total_requests": self.total_requests,
                "total_failures": self.total_failures,
                "total_tokens": self.total_tokens,
            }

    def _send_with_retries(self, request: Dict[str, Any]) -> GrokResponse:
        max_attempts = self.max_retries + 1
        retryer = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, exp_base=2),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            reraise=True
        )

        for attempt in retryer:
            with attempt:
                response = self._send(
                    request,
                    attempt=attempt.retry_state.attempt_number,
                    max_attempts=max_attempts
                )
        return response

    def _send(self, request: Dict[str, Any], attempt: int, max_attempts: int) -> GrokResponse:
        """One HTTP round trip, with SDK errors mapped to client errors."""
        start = time.perf_counter()
        trace_logger.llm_request(
            model=self.model,
            message_count=len(request["messages"]),
            attempt=attempt,
            max_attempts=max_attempts,
            prompt_preview=preview(request["messages"][-1]["content"]) if request["messages"] else ""
        )

        try:
            completion = self._client.chat.completions.create(**request)
        # APITimeoutError subclasses APIConnectionError and RateLimitError
        # subclasses APIStatusError, so order matters here
        except openai.APITimeoutError as e:
            raise self._failure(
                GrokTimeoutError(f"Request timed out after {self.timeout_seconds}s"),
                e, start, attempt, max_attempts
            ) from e
        except openai.RateLimitError as e:
            raise self._failure(
                GrokRateLimitError(
                    "Rate limit exceeded",
                    retry_after=e.response.headers.get("retry-after")
                ),
                e, start, attempt, max_attempts
            ) from e
        except openai.APIStatusError as e:
            raise self._failure(
                GrokAPIError(e.status_code, e.message),
                e, start, attempt, max_attempts
            ) from e
        except openai.APIConnectionError as e:
            raise self._failure(
                GrokConnectionError(f"Connection failed: {e}"),
                e, start, attempt, max_attempts
            ) from e

        duration_ms = (time.perf_counter() - start) * 1000
        content = ""
        if completion.choices:
            content = completion.choices[0].message.content or ""
        usage = {}
        if completion.usage is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }

        trace_logger.llm_response(
            model=completion.model or self.model,
            duration_ms=duration_ms,
            content=content,
            total_tokens=usage.get("total_tokens"),
            attempt=attempt
        )

        return GrokResponse(
            content=content,
            model=completion.model or self.model,
            duration_ms=duration_ms,
            usage=usage
        )

    def _failure(
        self,
        error: GrokClientError,
        cause: Exception,
        start: float,
        attempt: int,
        max_attempts: int
    ) -> GrokClientError:
        trace_logger.llm_failure(
            error_type=type(error).__name__,
            error_message=str(cause),
            duration_ms=(time.perf_counter() - start) * 1000,
            attempt=attempt,
            max_attempts=max_attempts
        )
        return error


_client: Optional[GrokClient] = None
_client_lock = threading.Lock()


def get_grok_client() -> GrokClient:
    """Lazily construct the process-wide client."""
    global _client
    with _client_lock:
        if _client is None:
            _client = GrokClient()
        return _client
