"""
Exceptions raised by the Grok API client.
"""

from typing import Optional


class GrokClientError(Exception):
    """Base class for every Grok client failure."""
    pass


class GrokConfigurationError(GrokClientError):
    """Client constructed without the settings it needs (e.g. API key)."""
    pass


class GrokTimeoutError(GrokClientError):
    """Request exceeded the configured timeout."""
    pass


class GrokRateLimitError(GrokClientError):
    """API answered HTTP 429."""

    def __init__(self, message: str, retry_after: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after


class GrokAPIError(GrokClientError):
    """API answered with a non-success status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Grok API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class GrokConnectionError(GrokClientError):
    """Network failure before a response was received."""
    pass


class CircuitBreakerOpenError(GrokClientError):
    """Call rejected locally because the circuit breaker is open."""

    def __init__(self, retry_in_seconds: float):
        super().__init__(
            f"Circuit breaker is open; retry in {retry_in_seconds:.1f}s"
        )
        self.retry_in_seconds = retry_in_seconds


class StructuredOutputError(GrokClientError):
    """Model output could not be turned into JSON."""

    def __init__(self, message: str, raw_content: str = ""):
        super().__init__(message)
        self.raw_content = raw_content
