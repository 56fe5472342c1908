"""Grok API integration."""

from integrations.errors import (
    GrokClientError, GrokConfigurationError, GrokTimeoutError,
    GrokRateLimitError, GrokAPIError, GrokConnectionError,
    CircuitBreakerOpenError, StructuredOutputError
)
from integrations.grok_client import (
    GrokClient, GrokResponse, CircuitBreaker, get_grok_client,
    parse_json, extract_json
)

__all__ = [
    "GrokClient", "GrokResponse", "CircuitBreaker", "get_grok_client",
    "parse_json", "extract_json",
    "GrokClientError", "GrokConfigurationError", "GrokTimeoutError",
    "GrokRateLimitError", "GrokAPIError", "GrokConnectionError",
    "CircuitBreakerOpenError", "StructuredOutputError"
]
