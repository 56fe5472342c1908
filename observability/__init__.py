"""Observability module with structured logging."""

from observability.logger import TraceLogger, trace_logger, preview

__all__ = ["TraceLogger", "trace_logger", "preview"]
