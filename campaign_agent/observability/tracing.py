"""
OpenTelemetry Tracing Module

This module provides tracing via OpenTelemetry: a server span per HTTP
request and internal spans around LLM calls and tool executions.

Pattern: Distributed tracing for observability
"""

from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional

from opentelemetry import trace
from opentelemetry.propagate import extract
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

from campaign_agent.observability.logging import (
    clear_correlation_id,
    set_correlation_id,
)


REQUEST_ID_HEADER = "x-request-id"

_tracer_provider: Optional[TracerProvider] = None


# =============================================================================
# TracerProvider Configuration
# =============================================================================


def setup_tracing(
    service_name: str = "campaign-agent",
    console_export: bool = False,
) -> TracerProvider:
    """
    Configure the global OpenTelemetry TracerProvider.

    Calling this more than once returns the provider created first.

    Args:
        service_name: Name of the service for resource identification
        console_export: Print finished spans to stdout

    Returns:
        Configured TracerProvider
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return _tracer_provider

    resource = Resource.create({SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer_provider = provider

    return provider


def get_tracer(name: str = __name__) -> Tracer:
    """Get a named tracer instance."""
    return trace.get_tracer(name)


def get_current_trace_id() -> Optional[str]:
    """
    Get the current trace ID as hex string.

    Returns:
        32-character hex string or None if no active span
    """
    span_context = trace.get_current_span().get_span_context()
    if span_context.trace_id == 0:
        return None
    return format(span_context.trace_id, "032x")


def _headers_to_dict(headers: list[tuple[bytes, bytes]]) -> dict[str, str]:
    """Convert ASGI headers to dict for propagation."""
    return {
        key.decode("latin-1").lower(): value.decode("latin-1")
        for key, value in headers
    }


# =============================================================================
# TracingMiddleware
# =============================================================================


class TracingMiddleware:
    """
    ASGI middleware for OpenTelemetry tracing.

    Creates a server span per HTTP request and sets the logging
    correlation ID from X-Request-ID, falling back to the trace ID.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        exclude_paths: Optional[list[str]] = None,
        tracer_name: str = "campaign_agent.http",
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths or ["/metrics"]
        self.tracer = get_tracer(tracer_name)

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
        path = scope.get("path", "/")

        if path in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        headers = _headers_to_dict(scope.get("headers", []))
        parent_context = extract(headers)
        status_code = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
            await send(message)

        with self.tracer.start_as_current_span(
            f"{method} {path}",
            context=parent_context,
            kind=SpanKind.SERVER,
        ) as span:
            correlation_id = headers.get(REQUEST_ID_HEADER) or get_current_trace_id()
            if correlation_id:
                set_correlation_id(correlation_id)

            span.set_attribute("http.method", method)
            span.set_attribute("http.route", path)

            try:
                await self.app(scope, receive, send_wrapper)
                span.set_attribute("http.status_code", status_code)
                if status_code >= 500:
                    span.set_status(Status(StatusCode.ERROR))
                else:
                    span.set_status(Status(StatusCode.OK))
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise
            finally:
                clear_correlation_id()


# =============================================================================
# Span Creation Helper
# =============================================================================


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict[str, Any]] = None,
) -> Generator[Span, None, None]:
    """
    Context manager for creating an internal span.

    Exceptions raised inside the block are recorded on the span and re-raised.

    Example:
        >>> with create_span("llm.tool_selection", {"llm.model": "gpt-5-mini"}):
        ...     ...
    """
    tracer = get_tracer("campaign_agent")
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        yield span
