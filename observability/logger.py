"""
Structured logging with trace IDs for observability.
HTTP requests, LLM calls, record changes and errors are logged.
"""

import logging
import json
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pathlib import Path
from contextlib import contextmanager
from pythonjsonlogger import jsonlogger

from config import settings


_current_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

PREVIEW_LENGTH = 500


def preview(text: Optional[str], length: int = PREVIEW_LENGTH) -> str:
    """Truncate a payload for logging."""
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + f"... [{len(text) - length} more chars]"


class TraceLogger:
    """Structured logger with trace ID support for request observability."""

    def __init__(self, name: str = "sdr_crm"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, settings.log_level))
        self.logger.propagate = False

        # Ensure log directory exists
        log_file_path = Path(settings.log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        # File handler with JSON formatting
        file_handler = logging.FileHandler(settings.log_file)
        json_formatter = jsonlogger.JsonFormatter(
            fmt='%(asctime)s %(name)s %(levelname)s %(message)s',
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        )
        file_handler.setFormatter(json_formatter)
        self.logger.addHandler(file_handler)

        # Console handler with readable formatting
        console_handler = logging.StreamHandler()
        console_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        console_handler.setFormatter(console_formatter)
        self.logger.addHandler(console_handler)

    def generate_trace_id(self) -> str:
        """Generate a new trace ID."""
        return str(uuid.uuid4())

    @property
    def current_trace_id(self) -> Optional[str]:
        return _current_trace_id.get()

    @contextmanager
    def trace(self, trace_id: Optional[str] = None):
        """Context manager for trace ID."""
        token = _current_trace_id.set(trace_id or self.generate_trace_id())
        try:
            yield _current_trace_id.get()
        finally:
            _current_trace_id.reset(token)

    def _log(self, level: str, event: str, **kwargs):
        """Internal log method with trace ID."""
        log_data = {
            "trace_id": _current_trace_id.get() or "unknown",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            **kwargs
        }

        log_method = getattr(self.logger, level.lower())
        log_method(json.dumps(log_data, default=str), extra={"event": event})

    def request_completed(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        **kwargs
    ):
        """Log HTTP request completion."""
        self._log(
            "info" if status_code < 500 else "error",
            "request_completed",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            **kwargs
        )

    def llm_request(
        self,
        model: str,
        message_count: int,
        attempt: int,
        max_attempts: int,
        **kwargs
    ):
        """Log outbound LLM request."""
        self._log(
            "debug",
            "llm_request",
            model=model,
            message_count=message_count,
            attempt=attempt,
            max_attempts=max_attempts,
            **kwargs
        )

    def llm_response(
        self,
        model: str,
        duration_ms: float,
        content: str,
        total_tokens: Optional[int] = None,
        **kwargs
    ):
        """Log LLM response with a truncated preview."""
        self._log(
            "info",
            "llm_response",
            model=model,
            duration_ms=round(duration_ms, 2),
            total_tokens=total_tokens,
            response_length=len(content),
            response_preview=preview(content),
            **kwargs
        )

    def llm_failure(
        self,
        error_type: str,
        error_message: str,
        duration_ms: float,
        attempt: int,
        max_attempts: int,
        **kwargs
    ):
        """Log a failed LLM attempt."""
        self._log(
            "warning",
            "llm_failure",
            error_type=error_type,
            error_message=error_message,
            duration_ms=round(duration_ms, 2),
            attempt=attempt,
            max_attempts=max_attempts,
            **kwargs
        )

    def circuit_breaker_opened(
        self,
        failure_count: int,
        timeout_seconds: float,
        **kwargs
    ):
        """Log circuit breaker trip."""
        self._log(
            "error",
            "circuit_breaker_opened",
            failure_count=failure_count,
            timeout_seconds=timeout_seconds,
            **kwargs
        )

    def record_changed(
        self,
        entity: str,
        entity_id: str,
        operation: str,
        **kwargs
    ):
        """Log a create/update/delete on a CRM record."""
        self._log(
            "info",
            "record_changed",
            entity=entity,
            entity_id=entity_id,
            operation=operation,
            **kwargs
        )

    def error_occurred(
        self,
        error_type: str,
        error_message: str,
        context: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Log error."""
        self._log(
            "error",
            "error_occurred",
            error_type=error_type,
            error_message=error_message,
            context=context or {},
            **kwargs
        )

    def debug(self, message: str, **kwargs):
        """Debug level log."""
        self._log("debug", "debug", message=message, **kwargs)

    def info(self, message: str, **kwargs):
        """Info level log."""
        self._log("info", "info", message=message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Warning level log."""
        self._log("warning", "warning", message=message, **kwargs)

    def error(self, message: str, **kwargs):
        """Error level log."""
        self._log("error", "error", message=message, **kwargs)


# Global logger instance
trace_logger = TraceLogger()
