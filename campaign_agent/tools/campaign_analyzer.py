"""
Campaign Analyzer Tool

The heaviest tool: aggregates campaigns, template messages, templates and
order attributions of one widget over a time window into a
CampaignAnalysisResult.

Request flow in execute():

1. Pre-flight check that the campaign data source is reachable.
2. Extract and validate the widget id (24 hex characters). Nothing is
   looked up in any cache or in-flight map before this succeeds.
3. Normalize the request into a cache key
   campaign:analysis:{widgetId}:{timeRange}:{failed}:{messages}:{attribution}
4. Join the in-flight computation for that key if one exists; otherwise
   start one. The computation checks the durable JSON cache, and on a miss
   fans out to the data source concurrently, aggregates in memory and
   writes the result back with the tool's cache TTL. It removes itself
   from the in-flight map when it settles, whether it succeeded or failed.

Concurrent identical requests therefore share one computation and one
outcome.

Pattern: Single-flight request coalescing
Pattern: Cache-aside over a soft-failing durable cache
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from campaign_agent.clients.campaign_data import CampaignDataSource
from campaign_agent.core.config import RateLimitPolicy
from campaign_agent.core.exceptions import DependencyUnavailableError
from campaign_agent.models.campaign import (
    CampaignAnalysisResult,
    CampaignMessageAnalytics,
    CampaignRecord,
    MessageRecord,
)
from campaign_agent.models.tools import RateLimit, ToolKind, ToolMetadata, ToolResult
from campaign_agent.services.cache import JSONCache
from campaign_agent.tools import campaign_insights as insights
from campaign_agent.tools.base import DEFAULT_CACHE_MAX_ENTRIES, Tool


logger = logging.getLogger(__name__)

WIDGET_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")
QUERY_WIDGET_ID_PATTERN = re.compile(r"widgetId[\"\s]*:[\"\s]*([a-fA-F0-9]{24})")

DEFAULT_TIME_RANGE = "14d"
TIME_RANGES = ("7d", "14d", "30d", "90d", "all")
TIME_RANGE_DAYS = {"7d": 7, "14d": 14, "30d": 30, "90d": 90}
UNKNOWN_TIME_RANGE_DAYS = 30
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Campaigns below this size are test sends.
MIN_RECIPIENTS = 10

DB_UNAVAILABLE_ERROR = (
    "Database not connected. Please ensure the database is properly initialized."
)
MISSING_WIDGET_ERROR = "Missing required widgetId"
INVALID_WIDGET_ERROR = (
    "Invalid widgetId provided. Please provide a valid 24-character hex id."
)
ANALYSIS_FAILED_ERROR = "Campaign analysis failed"

DESCRIPTION = (
    "Comprehensive campaign analysis tool that provides deep insights into campaign "
    "performance, failures, template usage, message analytics, and attribution data."
)

PARAMETERS_HELP = """

Available parameters:
- widgetId (required): 24-character hex id of the widget to analyze
- timeRange (optional): Analysis time range ('7d', '14d', '30d', '90d', 'all', default: '14d')
- includeFailed (optional): Include failed campaigns in analysis (default: true)
- includeMessages (optional): Include detailed message analysis (default: true)
- includeAttribution (optional): Include attribution and revenue data (default: true)"""


def since_for(time_range: str, now: Optional[datetime] = None) -> datetime:
    """Start of the analysis window; unknown ranges mean the last 30 days."""
    if time_range == "all":
        return EPOCH
    current = now or datetime.now(timezone.utc)
    days = TIME_RANGE_DAYS.get(time_range, UNKNOWN_TIME_RANGE_DAYS)
    return current - timedelta(days=days)


def extract_widget_id(input: dict[str, Any]) -> Optional[str]:
    """
    Find the widget id in explicit arguments, then in the caller context,
    then in a "widgetId: <id>" fragment of a free-form query.
    """
    widget_id = input.get("widgetId")
    if widget_id:
        return str(widget_id)

    context = input.get("context")
    if isinstance(context, dict) and context.get("widgetId"):
        return str(context["widgetId"])

    query = input.get("query")
    if isinstance(query, str):
        match = QUERY_WIDGET_ID_PATTERN.search(query)
        if match:
            return match.group(1)

    return None


class CampaignAnalyzerTool(Tool):
    """
    analyzeCampaigns: widget-level campaign analytics.

    Args:
        data_source: Campaign data port.
        cache: Durable JSON cache shared across instances.

    Example:
        >>> tool = CampaignAnalyzerTool(data_source, JSONCache(redis_client))
        >>> result = await tool.execute_with_retry(
        ...     {"widgetId": "507f1f77bcf86cd799439011", "timeRange": "7d"}
        ... )
    """

    def __init__(
        self,
        data_source: CampaignDataSource,
        cache: JSONCache,
        rate_limit_policy: RateLimitPolicy = RateLimitPolicy.WAIT,
        cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
    ) -> None:
        metadata = ToolMetadata(
            name=ToolKind.ANALYZE_CAMPAIGNS.value,
            description=DESCRIPTION,
            version="1.0.0",
            category="analytics",
            tags=("campaign", "analysis", "performance", "failure", "attribution"),
            rate_limit=RateLimit(requests=50, window_seconds=3600),
            timeout_seconds=30.0,
        )
        super().__init__(
            metadata,
            {
                "max_retries": 2,
                "retry_delay_seconds": 2.0,
                "timeout_seconds": 30.0,
                "cache_enabled": True,
                "cache_ttl_seconds": 900.0,
            },
            rate_limit_policy=rate_limit_policy,
            cache_max_entries=cache_max_entries,
        )
        self._data = data_source
        self._cache_store = cache
        self._in_flight: dict[str, asyncio.Task[ToolResult]] = {}

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # =========================================================================
    # Cache Key
    # =========================================================================

    def _normalize(self, input: dict[str, Any]) -> tuple[str, str, bool, bool, bool]:
        return (
            extract_widget_id(input) or "",
            input.get("timeRange") or DEFAULT_TIME_RANGE,
            input.get("includeFailed") is not False,
            input.get("includeMessages") is not False,
            input.get("includeAttribution") is not False,
        )

    def generate_cache_key(self, input: dict[str, Any]) -> str:
        """
        Normalized key: argument order, extra fields and omitted default
        flags do not change it.
        """
        widget_id, time_range, failed, messages, attribution = self._normalize(input)
        flags = ":".join(str(flag).lower() for flag in (failed, messages, attribution))
        return f"campaign:analysis:{widget_id}:{time_range}:{flags}"

    # =========================================================================
    # Execute
    # =========================================================================

    async def execute(self, input: dict[str, Any]) -> ToolResult:
        if not await self._data.is_available():
            logger.warning("Campaign data source unavailable")
            return ToolResult.fail(DB_UNAVAILABLE_ERROR)

        widget_id, time_range, failed, messages, attribution = self._normalize(input)
        if not widget_id:
            return ToolResult.fail(MISSING_WIDGET_ERROR)
        if not WIDGET_ID_PATTERN.match(widget_id):
            logger.info("Rejected malformed widgetId")
            return ToolResult.fail(INVALID_WIDGET_ERROR)

        key = self.generate_cache_key(input)

        task = self._in_flight.get(key)
        if task is not None:
            logger.debug(f"Joining in-flight analysis {key}")
        else:
            task = asyncio.create_task(
                self._run_analysis(key, widget_id, time_range, failed, messages, attribution)
            )
            self._in_flight[key] = task

        # Shielded so a cancelled waiter never cancels the shared computation.
        return await asyncio.shield(task)

    async def _run_analysis(
        self,
        key: str,
        widget_id: str,
        time_range: str,
        include_failed: bool,
        include_messages: bool,
        include_attribution: bool,
    ) -> ToolResult:
        try:
            cached = await self._cache_store.get_json(key)
            if cached:
                logger.debug(f"Durable cache hit for {key}")
                return ToolResult.ok(cached)

            result = await self._analyze(
                widget_id, time_range, include_failed, include_messages, include_attribution
            )
            data = result.model_dump(mode="json")
            await self._cache_store.set_json(key, data, int(self.config.cache_ttl_seconds))
            return ToolResult.ok(data)

        except DependencyUnavailableError as e:
            logger.warning(f"Campaign analysis aborted, data source unavailable: {e}")
            return ToolResult.fail(DB_UNAVAILABLE_ERROR)
        except Exception:
            logger.exception(f"Campaign analysis failed for {key}")
            return ToolResult.fail(ANALYSIS_FAILED_ERROR)
        finally:
            self._in_flight.pop(key, None)

    # =========================================================================
    # Aggregation
    # =========================================================================

    async def _analyze(
        self,
        widget_id: str,
        time_range: str,
        include_failed: bool,
        include_messages: bool,
        include_attribution: bool,
    ) -> CampaignAnalysisResult:
        since = since_for(time_range)
        statuses = ["completed", "processing"]
        if include_failed:
            statuses.append("failed")

        campaigns_task = asyncio.ensure_future(
            self._data.find_campaigns(widget_id, since, statuses, MIN_RECIPIENTS)
        )
        campaigns, message_records, templates, attributions = await asyncio.gather(
            campaigns_task,
            self._load_messages(campaigns_task, since) if include_messages else _nothing(),
            self._data.find_templates(since),
            self._data.find_attributions(widget_id, since)
            if include_attribution
            else _nothing(),
        )

        overview = insights.calculate_overview(campaigns)
        failures = insights.analyze_failures(campaigns)
        template_usage = insights.analyze_template_usage(campaigns, templates)

        campaign_analytics: list[CampaignMessageAnalytics] = (
            insights.group_messages_by_campaign(message_records) if message_records else []
        )
        message_analysis = insights.analyze_messages(campaign_analytics)

        performance = insights.generate_performance_insights(
            campaigns, template_usage, failures
        )
        recommendations = insights.generate_recommendations(
            overview, failures, template_usage, message_analysis
        )

        error_insights = None
        if campaign_analytics:
            error_insights = insights.generate_error_insights(campaign_analytics)
            recommendations.extend(
                error_insights.recommendations[: insights.MAX_ERROR_RECOMMENDATIONS]
            )

        logger.info(
            f"Analyzed {overview.total_campaigns} campaigns over {time_range} "
            f"({message_analysis.total_messages} messages)"
        )

        return CampaignAnalysisResult(
            widget_id=widget_id,
            time_range=time_range,
            analysis_date=datetime.now(timezone.utc),
            overview=overview,
            failures=failures,
            template_usage=template_usage,
            message_analysis=message_analysis,
            attribution_data=insights.summarize_attributions(attributions or []),
            recommendations=recommendations,
            performance_insights=performance,
            error_insights=error_insights,
        )

    async def _load_messages(
        self,
        campaigns_task: "asyncio.Future[list[CampaignRecord]]",
        since: datetime,
    ) -> list[MessageRecord]:
        campaigns = await campaigns_task
        if not campaigns:
            return []
        return await self._data.find_campaign_messages([c.id for c in campaigns], since)

    # =========================================================================
    # LLM-facing Spec
    # =========================================================================

    def get_function_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": DESCRIPTION + PARAMETERS_HELP,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "widgetId": {
                            "type": "string",
                            "description": "24-character hex widget id",
                        },
                        "timeRange": {
                            "type": "string",
                            "enum": list(TIME_RANGES),
                            "default": DEFAULT_TIME_RANGE,
                        },
                        "includeFailed": {"type": "boolean", "default": True},
                        "includeMessages": {"type": "boolean", "default": True},
                        "includeAttribution": {"type": "boolean", "default": True},
                    },
                    "required": [],
                    "additionalProperties": True,
                },
            },
        }


async def _nothing() -> None:
    return None
