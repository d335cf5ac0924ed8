"""
Domain Models

This module contains the conversational domain models: stored transcript
messages, in-process agent sessions and their statistics, and the
snapshots returned by the engine and service.

Pattern: Domain model with Pydantic validation
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


ChatRole = Literal["system", "user", "assistant", "tool"]


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# =============================================================================
# StoredMessage
# =============================================================================


class StoredMessage(BaseModel):
    """
    One entry of a session's durable transcript.

    Attributes:
        role: Chat role of the message author.
        content: Message text.
        timestamp: Epoch milliseconds when the message was appended.
        turn_id: Identifier of the chat turn that produced the message.
            Appends carrying a turn_id are deduplicated by the store.
    """

    role: ChatRole = Field(..., description="Message role")
    content: str = Field(..., description="Message content")
    timestamp: int = Field(
        default_factory=lambda: int(utc_now().timestamp() * 1000),
        description="Epoch milliseconds",
    )
    turn_id: Optional[str] = Field(default=None, description="Originating turn id")

    def to_chat_message(self) -> dict[str, str]:
        """Convert to the {role, content} shape sent to the LLM."""
        return {"role": self.role, "content": self.content}


# =============================================================================
# AgentSession
# =============================================================================


class SessionStats(BaseModel):
    """Per-session counters updated on every turn."""

    message_count: int = Field(default=0, ge=0)
    tool_usage: dict[str, int] = Field(default_factory=dict)
    average_response_time: float = Field(default=0.0, ge=0.0)
    error_count: int = Field(default=0, ge=0)


class AgentSession(BaseModel):
    """
    Ephemeral per-process conversational context.

    Created lazily on the first message for an id and swept once idle for
    longer than the session timeout. The metadata dict is the free-form
    caller context merged across turns, plus engine-written keys such as
    lastAnalysisKey.
    """

    id: str = Field(..., description="Session identifier")
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    stats: SessionStats = Field(default_factory=SessionStats)

    def is_idle(self, timeout_seconds: float, now: Optional[datetime] = None) -> bool:
        """Whether the session has been inactive longer than the timeout."""
        current = now or utc_now()
        return current - self.last_activity > timedelta(seconds=timeout_seconds)


# =============================================================================
# Turn and Metrics Snapshots
# =============================================================================


class ChatTurnResult(BaseModel):
    """Outcome of one engine turn."""

    response: str
    session_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatResponse(BaseModel):
    """Outcome of AgentService.process_chat(), as returned to API callers."""

    response: str
    session_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    context: Optional[dict[str, Any]] = None


class AgentMetrics(BaseModel):
    """Engine-level metrics snapshot."""

    total_sessions: int = 0
    active_sessions: int = 0
    total_messages: int = 0
    average_response_time: float = 0.0
    tool_usage: dict[str, int] = Field(default_factory=dict)
    error_rate: float = 0.0
    memory_usage: int = 0


class HealthState(str, Enum):
    """Advisory health classification."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthStatus(BaseModel):
    """Health snapshot returned by AgentService.get_health_status()."""

    status: HealthState
    details: dict[str, Any] = Field(default_factory=dict)
