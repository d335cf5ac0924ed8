"""Models Package.

Pydantic models for tools, conversational sessions and campaign analytics.
"""

from campaign_agent.models.domain import (
    AgentMetrics,
    AgentSession,
    ChatResponse,
    ChatTurnResult,
    HealthState,
    HealthStatus,
    SessionStats,
    StoredMessage,
)
from campaign_agent.models.tools import (
    RateLimit,
    ToolAction,
    ToolCall,
    ToolConfig,
    ToolKind,
    ToolMetadata,
    ToolResult,
    ToolResultMetadata,
    ToolStats,
    ToolValidationResult,
)

__all__ = [
    # Domain
    "AgentMetrics",
    "AgentSession",
    "ChatResponse",
    "ChatTurnResult",
    "HealthState",
    "HealthStatus",
    "SessionStats",
    "StoredMessage",
    # Tools
    "RateLimit",
    "ToolAction",
    "ToolCall",
    "ToolConfig",
    "ToolKind",
    "ToolMetadata",
    "ToolResult",
    "ToolResultMetadata",
    "ToolStats",
    "ToolValidationResult",
]
