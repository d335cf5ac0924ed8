"""
API Dependencies

This module builds the explicit service graph (AgentContext) and exposes
the FastAPI dependency functions that hand it to request handlers.

The context is created once by the application lifespan and stored on
app.state; handlers read it through Depends(get_agent_service). Nothing is
a module-level singleton, so tests can build independent contexts and
override any dependency with app.dependency_overrides.

Pattern: Explicit context object passed by dependency injection
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from redis.asyncio import Redis

from campaign_agent.clients.campaign_data import CampaignDataSource, HTTPCampaignDataSource
from campaign_agent.clients.http import create_http_client
from campaign_agent.core.config import Settings
from campaign_agent.providers.base import LLMClient
from campaign_agent.providers.openai import OpenAIChatClient
from campaign_agent.services.agent import AgentService
from campaign_agent.services.cache import JSONCache
from campaign_agent.services.engine import AgentEngine
from campaign_agent.sessions.store import SessionHistoryStore
from campaign_agent.tools import build_default_tools
from campaign_agent.tools.manager import ToolManager


logger = logging.getLogger(__name__)


# =============================================================================
# AgentContext
# =============================================================================


@dataclass
class AgentContext:
    """Every long-lived collaborator of one application instance."""

    settings: Settings
    redis: Redis
    cache: JSONCache
    history_store: SessionHistoryStore
    llm: LLMClient
    http_client: httpx.AsyncClient
    data_source: CampaignDataSource
    tool_manager: ToolManager
    engine: AgentEngine
    service: AgentService

    async def close(self) -> None:
        """Stop background work and release network resources."""
        await self.service.stop()
        await self.data_source.close()
        await self.llm.close()
        await self.http_client.aclose()
        await self.redis.aclose()


def build_agent_context(
    settings: Settings,
    redis_client: Redis,
    *,
    llm: Optional[LLMClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    data_source: Optional[CampaignDataSource] = None,
) -> AgentContext:
    """
    Wire the service graph from settings.

    Collaborators passed explicitly replace the ones built from settings.
    """
    cache = JSONCache(redis_client)
    history_store = SessionHistoryStore(
        redis_client,
        memory_limit=settings.memory_limit,
        ttl_seconds=settings.history_ttl_seconds,
    )

    if llm is None:
        llm = OpenAIChatClient(
            api_key=settings.openai_api_key.get_secret_value(),
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds,
            organization=settings.openai_organization,
            base_url=settings.openai_base_url,
        )
    if http_client is None:
        http_client = create_http_client()
    if data_source is None:
        data_source = HTTPCampaignDataSource(
            settings.campaign_data_url,
            timeout_seconds=settings.campaign_data_timeout_seconds,
        )

    tool_manager = ToolManager()
    for tool in build_default_tools(settings, cache, data_source, http_client):
        tool_manager.register_tool(tool)

    engine = AgentEngine(
        llm,
        tool_manager,
        history_store,
        model=settings.llm_model,
        max_tokens=settings.llm_max_tokens,
        llm_timeout_seconds=settings.llm_timeout_seconds,
        session_timeout_seconds=settings.session_timeout_seconds,
        cleanup_interval_seconds=settings.session_cleanup_interval_seconds,
        history_window=settings.history_window,
        context_max_chars=settings.session_context_max_chars,
    )
    service = AgentService(
        engine,
        tool_manager,
        history_store,
        model=settings.llm_model,
        max_retries=settings.agent_max_retries,
        retry_delay_seconds=settings.agent_retry_delay_seconds,
        max_sessions=settings.max_sessions,
        context_max_chars=settings.session_context_max_chars,
    )

    logger.info(f"Agent context built with tools: {', '.join(tool_manager.get_tool_names())}")

    return AgentContext(
        settings=settings,
        redis=redis_client,
        cache=cache,
        history_store=history_store,
        llm=llm,
        http_client=http_client,
        data_source=data_source,
        tool_manager=tool_manager,
        engine=engine,
        service=service,
    )


# =============================================================================
# FastAPI Dependencies
# =============================================================================


def get_agent_context(request: Request) -> AgentContext:
    return request.app.state.agent_context


def get_agent_service(request: Request) -> AgentService:
    """Dependency returning the AgentService of the current application."""
    return get_agent_context(request).service


__all__ = [
    "AgentContext",
    "build_agent_context",
    "get_agent_context",
    "get_agent_service",
]
