"""
Tools Package - Tool Capabilities and Registry

This package provides the abstract Tool with its retry, cache and
rate-limit policies, the ToolManager registry, and the two concrete
tools: campaign analytics and books search.
"""

import httpx

from campaign_agent.clients.campaign_data import CampaignDataSource
from campaign_agent.core.config import Settings
from campaign_agent.services.cache import JSONCache
from campaign_agent.tools.base import RateLimiter, Tool, TTLCache
from campaign_agent.tools.books import BookResult, BooksTool
from campaign_agent.tools.campaign_analyzer import CampaignAnalyzerTool
from campaign_agent.tools.manager import ToolManager


def build_default_tools(
    settings: Settings,
    cache: JSONCache,
    data_source: CampaignDataSource,
    http_client: httpx.AsyncClient,
) -> list[Tool]:
    """One instance of every known tool kind, configured from settings."""
    return [
        CampaignAnalyzerTool(
            data_source,
            cache,
            rate_limit_policy=settings.tool_rate_limit_policy,
            cache_max_entries=settings.tool_cache_max_entries,
        ),
        BooksTool(
            http_client,
            api_key=settings.google_api_key.get_secret_value(),
            url=settings.google_books_url,
            rate_limit_policy=settings.tool_rate_limit_policy,
            cache_max_entries=settings.tool_cache_max_entries,
        ),
    ]


__all__ = [
    "BookResult",
    "BooksTool",
    "CampaignAnalyzerTool",
    "RateLimiter",
    "TTLCache",
    "Tool",
    "ToolManager",
    "build_default_tools",
]
