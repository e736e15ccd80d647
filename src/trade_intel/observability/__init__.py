"""Structured logging and trace correlation."""

from .logger import get_logger, get_trace_id, new_trace_id, operation_context, setup_logging

__all__ = ["get_logger", "get_trace_id", "new_trace_id", "operation_context", "setup_logging"]
