"""
Tests for the chat router.

Requests run against a FastAPI app that only mounts the chat router, with
get_agent_service overridden. Happy paths use a real AgentService over the
scripted LLM; failure paths use a mocked service.

Pattern: Dependency injection overrides (Sinha pp. 89-91)
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from campaign_agent.api.deps import get_agent_service
from campaign_agent.api.routes.chat import router as chat_router
from campaign_agent.core.exceptions import ProviderError
from campaign_agent.services.agent import AgentService


WIDGET = "507f1f77bcf86cd799439011"


def build_app(service: object) -> FastAPI:
    app = FastAPI()
    app.include_router(chat_router)
    app.dependency_overrides[get_agent_service] = lambda: service
    return app


@pytest.fixture
def service(make_service) -> AgentService:
    return make_service()


@pytest.fixture
async def api(service):
    transport = httpx.ASGITransport(app=build_app(service))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def failing_service() -> MagicMock:
    mock = MagicMock(spec=AgentService)
    mock.process_with_retry = AsyncMock(
        side_effect=ProviderError("upstream exploded: sk-secret", provider="openai")
    )
    return mock


# =============================================================================
# Router Structure
# =============================================================================


class TestChatRouter:
    def test_router_prefix_and_tags(self) -> None:
        assert isinstance(chat_router, APIRouter)
        assert chat_router.prefix == "/chat"
        assert "Chat" in chat_router.tags


# =============================================================================
# POST /chat
# =============================================================================


class TestPostChat:
    """Chat turn envelope and error mapping."""

    async def test_success_envelope(self, api, scripted_llm) -> None:
        scripted_llm.queue(scripted_llm.text("All campaigns delivered."))

        response = await api.post(
            "/chat",
            json={"message": "How did we do?", "sessionId": "s1", "context": {"widgetId": WIDGET}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["response"] == "All campaigns delivered."
        assert body["data"]["session_id"] == "s1"
        assert body["data"]["context"] == {"widgetId": WIDGET}
        assert body["data"]["metadata"]["tools_used"] == []

    async def test_session_id_generated(self, api, scripted_llm) -> None:
        scripted_llm.queue(scripted_llm.text("Hi"))

        response = await api.post("/chat", json={"message": "hello"})

        assert response.json()["data"]["session_id"].startswith("session_")

    @pytest.mark.parametrize("payload", [{}, {"message": ""}, {"message": "   "}])
    async def test_missing_message(self, api, scripted_llm, payload) -> None:
        response = await api.post("/chat", json=payload)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": {
                "message": "Message is required and must be a string",
                "code": "INVALID_MESSAGE",
            },
        }
        assert scripted_llm.calls == []

    def test_failure_is_generic_500(self, failing_service) -> None:
        client = TestClient(build_app(failing_service))

        response = client.post("/chat", json={"message": "hello"})

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": {"message": "Internal server error", "code": "INTERNAL_ERROR"},
        }
        assert "sk-secret" not in response.text


# =============================================================================
# Sessions
# =============================================================================


class TestSessionEndpoints:
    """Session snapshot and removal."""

    async def test_get_session(self, api, scripted_llm) -> None:
        scripted_llm.queue(scripted_llm.text("ok"))
        await api.post("/chat", json={"message": "hello", "sessionId": "s1"})

        response = await api.get("/chat/session/s1")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == "s1"
        assert data["stats"]["message_count"] == 1

    async def test_get_unknown_session(self, api) -> None:
        response = await api.get("/chat/session/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SESSION_NOT_FOUND"

    async def test_delete_session(self, api, scripted_llm, service) -> None:
        scripted_llm.queue(scripted_llm.text("ok"))
        await api.post("/chat", json={"message": "hello", "sessionId": "s1"})

        response = await api.delete("/chat/session/s1")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Session cleared successfully"}
        assert service.get_session("s1") is None

    async def test_delete_unknown_session(self, api) -> None:
        response = await api.delete("/chat/session/nope")

        assert response.status_code == 404


# =============================================================================
# Stats and Health
# =============================================================================


class TestStatsAndHealth:
    async def test_stats(self, api, scripted_llm) -> None:
        scripted_llm.queue(scripted_llm.text("ok"))
        await api.post("/chat", json={"message": "hello", "sessionId": "s1"})

        response = await api.get("/chat/stats")

        data = response.json()["data"]
        assert data["total_requests"] == 1
        assert data["sessions"] == {"total": 1, "active": 1}

    async def test_health_is_always_200(self, api) -> None:
        response = await api.get("/chat/health")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["details"]["error_rate"] == 0.0
