"""
Campaign Agent - Main Application Entry Point

This module provides the FastAPI application factory. The lifespan connects
Redis, builds the AgentContext, starts the session sweep, and tears all of
it down again on shutdown.

Run with:
    uvicorn campaign_agent.main:app --port 8080
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from campaign_agent import __version__
from campaign_agent.api.deps import build_agent_context
from campaign_agent.api.middleware.logging import RequestLoggingMiddleware
from campaign_agent.api.routes.chat import router as chat_router
from campaign_agent.api.routes.health import router as health_router
from campaign_agent.core.config import Settings, get_settings
from campaign_agent.observability.logging import configure_logging, get_logger
from campaign_agent.observability.metrics import MetricsMiddleware, get_metrics_app
from campaign_agent.observability.tracing import TracingMiddleware, setup_tracing


APP_NAME = "Campaign Agent"
APP_DESCRIPTION = "Conversational campaign analytics agent with LLM tool calling"


def get_cors_origins(settings: Settings) -> list[str]:
    """Allow every origin in development only."""
    return ["*"] if settings.environment == "development" else []


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (default: loaded from environment)

    Returns:
        Configured FastAPI app; the service graph is created on startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # =====================================================================
        # STARTUP
        # =====================================================================
        configure_logging(level=settings.log_level)
        setup_tracing(settings.service_name, settings.tracing_console_export)
        logger = get_logger("campaign_agent.main")

        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        context = build_agent_context(settings, redis_client)
        app.state.agent_context = context
        context.service.start()

        logger.info(
            "service started",
            service=settings.service_name,
            version=__version__,
            environment=settings.environment,
        )

        yield

        # =====================================================================
        # SHUTDOWN
        # =====================================================================
        logger.info("service shutting down", service=settings.service_name)
        await context.close()

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=__version__,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(chat_router)
    app.mount("/metrics", get_metrics_app())

    @app.get("/", tags=["Info"])
    async def root() -> dict[str, Any]:
        """Basic service information."""
        return {
            "service": APP_NAME,
            "version": __version__,
            "docs": "/docs" if settings.environment != "production" else "disabled",
        }

    return app


app = create_app()
