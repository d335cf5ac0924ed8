"""
Pytest configuration and shared fixtures for the Campaign Agent tests.

Fixtures:
- fake_redis: fakeredis async client (decode_responses=True)
- test_settings: Settings with fast retry/timeout values
- campaign_data: in-memory CampaignDataSource with call counters
- scripted_llm: LLMClient returning queued responses
- history_store / json_cache: Redis-backed stores over fake_redis
- make_engine / make_service: factories wiring real components

Pattern: FakeRepository for testing (Percival & Gregory pp. 157)
"""

import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import fakeredis.aioredis
import pytest
import pytest_asyncio

# Add project root to path for imports
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from campaign_agent.clients.campaign_data import CampaignDataSource  # noqa: E402
from campaign_agent.core.config import Settings  # noqa: E402
from campaign_agent.models.campaign import (  # noqa: E402
    AttributionRecord,
    CampaignRecord,
    MessageRecord,
    TemplateRecord,
)
from campaign_agent.providers.base import LLMClient  # noqa: E402
from campaign_agent.services.agent import AgentService  # noqa: E402
from campaign_agent.services.cache import JSONCache  # noqa: E402
from campaign_agent.services.engine import AgentEngine  # noqa: E402
from campaign_agent.sessions.store import SessionHistoryStore  # noqa: E402
from campaign_agent.tools.manager import ToolManager  # noqa: E402


WIDGET_ID = "507f1f77bcf86cd799439011"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for service interactions")


# =============================================================================
# Fakes
# =============================================================================


class FakeCampaignDataSource(CampaignDataSource):
    """
    In-memory campaign data with per-method call counters.

    `delay` makes every query yield to the event loop for that long, which
    lets tests overlap concurrent analyses.
    """

    def __init__(
        self,
        campaigns: Optional[list[CampaignRecord]] = None,
        messages: Optional[list[MessageRecord]] = None,
        templates: Optional[list[TemplateRecord]] = None,
        attributions: Optional[list[AttributionRecord]] = None,
        available: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.campaigns = campaigns or []
        self.messages = messages or []
        self.templates = templates or []
        self.attributions = attributions or []
        self.available = available
        self.delay = delay
        self.error: Optional[Exception] = None
        self.calls: dict[str, int] = {
            "is_available": 0,
            "find_campaigns": 0,
            "find_campaign_messages": 0,
            "find_templates": 0,
            "find_attributions": 0,
        }
        self.last_statuses: list[str] = []
        self.last_since: Optional[datetime] = None

    async def _tick(self, name: str) -> None:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def is_available(self) -> bool:
        self.calls["is_available"] += 1
        return self.available

    async def find_campaigns(
        self,
        widget_id: str,
        since: datetime,
        statuses: Sequence[str],
        min_recipients: int = 0,
    ) -> list[CampaignRecord]:
        await self._tick("find_campaigns")
        self.last_statuses = list(statuses)
        self.last_since = since
        return [
            c
            for c in self.campaigns
            if c.status in statuses and c.metrics.total_recipients >= min_recipients
        ]

    async def find_campaign_messages(
        self,
        campaign_ids: Sequence[str],
        since: datetime,
    ) -> list[MessageRecord]:
        await self._tick("find_campaign_messages")
        return [m for m in self.messages if m.campaign_id in campaign_ids]

    async def find_templates(self, since: datetime) -> list[TemplateRecord]:
        await self._tick("find_templates")
        return list(self.templates)

    async def find_attributions(
        self,
        widget_id: str,
        since: datetime,
    ) -> list[AttributionRecord]:
        await self._tick("find_attributions")
        return list(self.attributions)


class ScriptedLLM(LLMClient):
    """
    LLMClient returning queued responses in order.

    A queued Exception is raised instead of returned. Every call is
    recorded in `calls` with a copy of its messages and options.
    """

    def __init__(self, responses: Optional[list[Any]] = None) -> None:
        self.responses: list[Any] = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def chat(self, messages: list[dict[str, Any]], **options: Any) -> str:
        response = await self.chat_with_tools(messages, [], "none", **options)
        return response["choices"][0]["message"].get("content") or ""

    async def chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_choice: Any = "auto",
        **options: Any,
    ) -> dict[str, Any]:
        self.calls.append(
            {
                "messages": [dict(m) for m in messages],
                "tools": tools,
                "tool_choice": tool_choice,
                **options,
            }
        )
        if not self.responses:
            raise AssertionError("ScriptedLLM has no queued response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @staticmethod
    def text(content: str) -> dict[str, Any]:
        return {"choices": [{"message": {"role": "assistant", "content": content}}]}

    @staticmethod
    def tool_calls(*calls: tuple[str, dict[str, Any]]) -> dict[str, Any]:
        return {
            "choices": [
                {
                    "message": {
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [
                            {
                                "id": f"call_{index}",
                                "type": "function",
                                "function": {"name": name, "arguments": json.dumps(args)},
                            }
                            for index, (name, args) in enumerate(calls, start=1)
                        ],
                    }
                }
            ]
        }


def make_campaign(
    id: str,
    status: str = "completed",
    *,
    name: Optional[str] = None,
    recipients: int = 100,
    sent: int = 100,
    delivered: int = 95,
    read: int = 50,
    click: int = 10,
    failed: int = 5,
    template_id: Optional[str] = "tpl_1",
    template_name: Optional[str] = None,
    failure_reason: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> CampaignRecord:
    """Build a CampaignRecord from the camelCase wire format."""
    return CampaignRecord.model_validate(
        {
            "id": id,
            "name": name or f"Campaign {id}",
            "status": status,
            "createdAt": (created_at or datetime(2026, 10, 1, tzinfo=timezone.utc)).isoformat(),
            "templateId": template_id,
            "templateName": template_name,
            "failureReason": failure_reason,
            "metrics": {
                "totalRecipients": recipients,
                "sent": sent,
                "delivered": delivered,
                "read": read,
                "click": click,
                "failed": failed,
            },
        }
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def fake_redis():
    """Provide a fake Redis client that decodes responses to str."""
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield redis
    await redis.aclose()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with short delays so retry paths run quickly."""
    return Settings(
        environment="development",
        redis_url="redis://localhost:6379",
        openai_api_key="sk-test",
        agent_max_retries=3,
        agent_retry_delay_seconds=0.0,
        llm_timeout_seconds=5.0,
        campaign_data_url="http://campaign-data.test",
    )


@pytest.fixture
def widget_id() -> str:
    return WIDGET_ID


@pytest.fixture
def campaign_factory():
    return make_campaign


@pytest.fixture
def data_source_factory():
    return FakeCampaignDataSource


@pytest.fixture
def campaign_data() -> FakeCampaignDataSource:
    return FakeCampaignDataSource(
        campaigns=[
            make_campaign("c1", "completed", read=60, click=20),
            make_campaign("c2", "completed", template_id="tpl_2"),
            make_campaign(
                "c3", "failed", sent=100, delivered=0, read=0, click=0, failed=100,
                failure_reason="Template rejected",
            ),
        ],
        messages=[
            MessageRecord(campaign_id="c1", status="delivered"),
            MessageRecord(
                campaign_id="c3",
                status="failed",
                failure_reason="Template rejected",
                error_history=[{"code": 131049, "title": "ecosystem"}],
            ),
        ],
        templates=[TemplateRecord(id="tpl_1", name="Welcome")],
        attributions=[
            AttributionRecord(total_amount=40.0, campaign="c1"),
            AttributionRecord(total_amount=60.0, campaign="c1"),
        ],
    )


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def history_store(fake_redis) -> SessionHistoryStore:
    return SessionHistoryStore(fake_redis, memory_limit=50)


@pytest.fixture
def json_cache(fake_redis) -> JSONCache:
    return JSONCache(fake_redis)


@pytest.fixture
def make_engine(scripted_llm, history_store):
    """Factory for an AgentEngine over the scripted LLM and given tools."""

    def _make(tools: Sequence[Any] = (), **kwargs: Any) -> AgentEngine:
        manager = ToolManager()
        for tool in tools:
            manager.register_tool(tool)
        return AgentEngine(scripted_llm, manager, history_store, **kwargs)

    return _make


@pytest.fixture
def make_service(make_engine, history_store):
    """Factory for an AgentService around a fresh engine."""

    def _make(tools: Sequence[Any] = (), **kwargs: Any) -> AgentService:
        engine = make_engine(tools)
        kwargs.setdefault("retry_delay_seconds", 0.0)
        return AgentService(engine, engine.tool_manager, history_store, **kwargs)

    return _make
