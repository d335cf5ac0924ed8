"""
Chat Router

Thin HTTP surface over AgentService:

- POST   /chat                    run a chat turn (with whole-turn retry)
- GET    /chat/session/{id}       in-process session snapshot
- DELETE /chat/session/{id}       drop the in-process session
- GET    /chat/stats              service, engine, tool and session metrics
- GET    /chat/health             advisory health status

Responses use the envelope {"success": true, "data": ...} or
{"success": false, "error": {"message", "code"}}. Unexpected failures are
reported with a generic message; details only go to the log.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from campaign_agent.api.deps import get_agent_service
from campaign_agent.core.exceptions import AgentValidationError, ErrorCode
from campaign_agent.services.agent import AgentService


logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================


class ChatRequest(BaseModel):
    """Body of POST /chat."""

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = Field(default=None, description="User message")
    session_id: Optional[str] = Field(
        default=None, alias="sessionId", description="Existing session id"
    )
    context: Optional[dict[str, Any]] = Field(
        default=None, description="Caller context, e.g. {\"widgetId\": ...}"
    )


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"message": message, "code": code}},
    )


# =============================================================================
# Router
# =============================================================================

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post("", response_model=None)
async def chat(
    request: ChatRequest,
    service: AgentService = Depends(get_agent_service),
) -> Any:
    """
    Run one chat turn.

    Returns:
        200 with the ChatResponse, 400 INVALID_MESSAGE for an empty message,
        500 INTERNAL_ERROR when every attempt failed.
    """
    if not request.message or not request.message.strip():
        return _error(
            400,
            "Message is required and must be a string",
            ErrorCode.INVALID_MESSAGE.value,
        )

    try:
        response = await service.process_with_retry(
            request.message,
            session_id=request.session_id,
            context=request.context,
        )
    except AgentValidationError as e:
        return _error(400, e.message, ErrorCode.INVALID_MESSAGE.value)
    except Exception as e:
        logger.error(f"Chat request failed: {type(e).__name__}: {e}")
        return _error(500, "Internal server error", ErrorCode.INTERNAL_ERROR.value)

    return {"success": True, "data": response.model_dump(mode="json")}


@router.get("/session/{session_id}", response_model=None)
async def get_session(
    session_id: str,
    service: AgentService = Depends(get_agent_service),
) -> Any:
    session = service.get_session(session_id)
    if session is None:
        return _error(404, "Session not found", ErrorCode.SESSION_NOT_FOUND.value)
    return {"success": True, "data": session.model_dump(mode="json")}


@router.delete("/session/{session_id}", response_model=None)
async def clear_session(
    session_id: str,
    service: AgentService = Depends(get_agent_service),
) -> Any:
    if not service.clear_session(session_id):
        return _error(404, "Session not found", ErrorCode.SESSION_NOT_FOUND.value)
    return {"success": True, "message": "Session cleared successfully"}


@router.get("/stats")
async def get_stats(service: AgentService = Depends(get_agent_service)) -> dict[str, Any]:
    return {"success": True, "data": service.get_metrics()}


@router.get("/health")
async def chat_health(service: AgentService = Depends(get_agent_service)) -> dict[str, Any]:
    """Advisory health; always 200, the status field carries the verdict."""
    health = service.get_health_status()
    return {"success": True, "data": health.model_dump(mode="json")}
