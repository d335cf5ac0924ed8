"""
Prometheus Metrics Module

This module provides Prometheus metrics for the agent backend: HTTP
request metrics, chat turn outcomes, tool executions and cache hit ratio,
and LLM call outcomes per protocol phase.

Pattern: Metrics collection for observability
"""

import re
import time
from typing import Any, Callable, Optional

from prometheus_client import Counter, Gauge, Histogram, make_asgi_app


# =============================================================================
# Path Normalization (High Cardinality Prevention)
# =============================================================================

# Order matters: more specific patterns first
_PATH_PATTERNS = [
    # Generated session ids: session_<ms>_<rand>
    (re.compile(r"/session_\d+_[0-9a-z]+(?=/|$)"), "/{id}"),
    # UUID v4
    (re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"), "/{id}"),
    # Generic hex ID: 8+ hex chars
    (re.compile(r"/[0-9a-fA-F]{8,}(?=/|$)"), "/{id}"),
    # Numeric ID
    (re.compile(r"/\d+(?=/|$)"), "/{id}"),
]


def normalize_path(path: str) -> str:
    """
    Normalize a URL path by replacing dynamic segments with placeholders.

    Examples:
        >>> normalize_path("/chat/session/session_1718000000000_k3j2h1g0f")
        '/chat/session/{id}'
        >>> normalize_path("/chat/health")
        '/chat/health'
    """
    if path == "/":
        return path

    normalized = path
    for pattern, replacement in _PATH_PATTERNS:
        normalized = pattern.sub(replacement, normalized)

    return normalized


# =============================================================================
# HTTP Metrics
# =============================================================================

REQUESTS_TOTAL = Counter(
    name="campaign_agent_http_requests_total",
    documentation="Total number of HTTP requests",
    labelnames=["method", "path", "status"],
)

REQUEST_DURATION_SECONDS = Histogram(
    name="campaign_agent_http_request_duration_seconds",
    documentation="HTTP request duration in seconds",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# =============================================================================
# Agent Metrics
# =============================================================================

CHAT_TURNS_TOTAL = Counter(
    name="campaign_agent_chat_turns_total",
    documentation="Chat turns processed by outcome",
    labelnames=["status"],
)

CHAT_TURN_DURATION_SECONDS = Histogram(
    name="campaign_agent_chat_turn_duration_seconds",
    documentation="Chat turn duration in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

TOOL_EXECUTIONS_TOTAL = Counter(
    name="campaign_agent_tool_executions_total",
    documentation="Tool invocations by outcome (success, failure, error, not_found)",
    labelnames=["tool", "outcome"],
)

TOOL_CACHE_OPERATIONS_TOTAL = Counter(
    name="campaign_agent_tool_cache_operations_total",
    documentation="Tool cache lookups by result (hit/miss)",
    labelnames=["tool", "result"],
)

LLM_CALLS_TOTAL = Counter(
    name="campaign_agent_llm_calls_total",
    documentation="LLM calls by protocol phase and outcome",
    labelnames=["phase", "outcome"],
)

ACTIVE_SESSIONS = Gauge(
    name="campaign_agent_active_sessions",
    documentation="In-process agent sessions currently held",
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_chat_turn(status: str, duration_seconds: float) -> None:
    """
    Record a completed or failed chat turn.

    Args:
        status: "success" or "error"
        duration_seconds: Turn wall time
    """
    CHAT_TURNS_TOTAL.labels(status=status).inc()
    CHAT_TURN_DURATION_SECONDS.observe(duration_seconds)


def record_tool_execution(tool: str, outcome: str) -> None:
    """Record a tool invocation outcome."""
    TOOL_EXECUTIONS_TOTAL.labels(tool=tool, outcome=outcome).inc()


def record_cache_operation(tool: str, result: str) -> None:
    """
    Record a tool cache lookup.

    Args:
        tool: Tool name
        result: "hit" or "miss"
    """
    TOOL_CACHE_OPERATIONS_TOTAL.labels(tool=tool, result=result).inc()


def record_llm_call(phase: str, outcome: str) -> None:
    """
    Record an LLM call.

    Args:
        phase: "tool_selection" or "synthesis"
        outcome: "success", "timeout" or "error"
    """
    LLM_CALLS_TOTAL.labels(phase=phase, outcome=outcome).inc()


def set_active_sessions(count: int) -> None:
    """Publish the current number of in-process sessions."""
    ACTIVE_SESSIONS.set(count)


# =============================================================================
# MetricsMiddleware ASGI Middleware
# =============================================================================


class MetricsMiddleware:
    """
    ASGI middleware for Prometheus HTTP metrics.

    Increments the request counter per method/path/status and records
    request latency. Excludes /metrics from metrics.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        exclude_paths: Optional[list[str]] = None,
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths or ["/metrics"]

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        raw_path = scope.get("path", "/")

        if raw_path in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        path = normalize_path(raw_path)
        start_time = time.perf_counter()
        status_code = "500"

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = str(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            REQUESTS_TOTAL.labels(method=method, path=path, status=status_code).inc()
            REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(duration)


# =============================================================================
# Metrics Endpoint
# =============================================================================


def get_metrics_app() -> Callable[..., Any]:
    """Get ASGI app serving Prometheus metrics at /metrics."""
    return make_asgi_app()
