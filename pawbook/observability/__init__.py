"""
Observability module - Logging, Metrics, and Tracing.
"""

from pawbook.observability.logging import get_logger, log_context, setup_logging
from pawbook.observability.metrics import metrics
from pawbook.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
