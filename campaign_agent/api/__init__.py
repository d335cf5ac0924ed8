"""API Package - FastAPI routes, middleware, and dependencies.

Components:
- routes: API endpoint routers (health, chat)
- middleware: Request logging with correlation ids
- deps: AgentContext wiring and dependency injection functions

Note: Import routers directly from campaign_agent.api.routes to avoid circular imports.
"""

__all__ = ["routes", "middleware", "deps"]
