"""
Health Router

Liveness and readiness endpoints.

- GET /health        liveness; always 200 while the process serves requests
- GET /health/ready  readiness; 503 unless Redis and the campaign data
                     service both respond
"""

import logging

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from campaign_agent import __version__
from campaign_agent.api.deps import AgentContext, get_agent_context


logger = logging.getLogger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    checks: dict[str, bool]


# =============================================================================
# Dependency Checks
# =============================================================================


async def check_redis(context: AgentContext) -> bool:
    try:
        await context.redis.ping()
        return True
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return False


async def check_campaign_data(context: AgentContext) -> bool:
    try:
        return await context.data_source.is_available()
    except Exception as e:
        logger.warning(f"Campaign data health check failed: {e}")
        return False


# =============================================================================
# Router
# =============================================================================

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="healthy", version=__version__)


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    context: AgentContext = Depends(get_agent_context),
) -> ReadinessResponse:
    checks = {
        "redis": await check_redis(context),
        "campaign_data": await check_campaign_data(context),
    }
    ready = all(checks.values())
    if not ready:
        response.status_code = 503
    return ReadinessResponse(status="ready" if ready else "not_ready", checks=checks)
