"""
Observability Package

Structured logging (structlog), Prometheus metrics and OpenTelemetry tracing.
"""

from campaign_agent.observability.logging import (
    clear_correlation_id,
    configure_logging,
    correlation_id_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from campaign_agent.observability.tracing import create_span, setup_tracing

__all__ = [
    "clear_correlation_id",
    "configure_logging",
    "correlation_id_context",
    "create_span",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_tracing",
]
