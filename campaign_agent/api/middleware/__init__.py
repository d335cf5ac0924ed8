"""Middleware Package - HTTP request logging."""

from campaign_agent.api.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
