"""
Tool Models

This module contains the data contracts every tool obeys: identity and
policy metadata, mutable runtime configuration, and the result envelope
returned by every invocation.

Pattern: Value objects (frozen metadata) and result objects
Pattern: Closed set of tool kinds for name-based dispatch
"""

import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# ToolKind - closed set of known tools
# =============================================================================


class ToolKind(str, Enum):
    """
    Known tool kinds.

    The LLM selects tools by string name; names are resolved to a kind here
    so unknown names are rejected explicitly instead of dispatched blindly.
    """

    ANALYZE_CAMPAIGNS = "analyzeCampaigns"
    SEARCH_BOOKS = "searchBooks"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["ToolKind"]:
        """Return the kind for a tool name, or None if the name is unknown."""
        if not name:
            return None
        try:
            return cls(name)
        except ValueError:
            return None


class ToolAction(str, Enum):
    """Change notifications delivered to ToolManager watchers."""

    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"


# =============================================================================
# ToolMetadata
# =============================================================================


class RateLimit(BaseModel):
    """
    Trailing-window rate limit.

    Attributes:
        requests: Maximum calls allowed inside the window.
        window_seconds: Length of the trailing window.
    """

    requests: int = Field(..., ge=1, description="Calls allowed per window")
    window_seconds: float = Field(..., gt=0, description="Window length in seconds")

    model_config = {"frozen": True}


class ToolMetadata(BaseModel):
    """
    Identity and policy descriptor for a tool.

    Immutable after tool construction.

    Attributes:
        name: Unique tool identifier (registry key)
        description: Human-readable description shown to the LLM
        version: Tool version string
        category: Category used by the manager's secondary index
        tags: Free-form tags for lookups
        rate_limit: Optional trailing-window rate limit
        timeout_seconds: Optional advisory timeout
    """

    name: str = Field(..., description="Unique tool identifier")
    description: str = Field(..., description="Tool description")
    version: str = Field(default="1.0.0", description="Tool version")
    category: str = Field(..., description="Tool category")
    tags: tuple[str, ...] = Field(default=(), description="Tool tags")
    rate_limit: Optional[RateLimit] = Field(default=None, description="Rate limit")
    timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Advisory timeout in seconds"
    )

    model_config = {"frozen": True}


# =============================================================================
# ToolConfig
# =============================================================================


class ToolConfig(BaseModel):
    """
    Mutable runtime policy of a tool.

    Owned by the Tool instance and updatable through the ToolManager.
    The retry delay is multiplied by the attempt number (linear backoff).
    """

    enabled: bool = Field(default=True, description="Whether the LLM may call the tool")
    max_retries: int = Field(default=3, ge=1, description="Maximum execute() attempts")
    retry_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Base delay between attempts"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-attempt wait limit"
    )
    cache_enabled: bool = Field(default=True, description="Whether results are cached")
    cache_ttl_seconds: float = Field(
        default=300.0, ge=0.0, description="In-process cache entry lifetime"
    )


# =============================================================================
# ToolResult
# =============================================================================


class ToolResultMetadata(BaseModel):
    """Execution details attached by the retry wrapper."""

    execution_time_ms: float = Field(default=0.0, description="Wall time in milliseconds")
    cache_hit: bool = Field(default=False, description="Served from the in-process cache")
    retries: int = Field(default=0, ge=0, description="Failed attempts before success")


class ToolResult(BaseModel):
    """
    Result envelope returned by every tool invocation.

    Invariant: success implies data is present and error is absent;
    failure implies error is present.

    Example:
        >>> ToolResult.ok({"total": 3})
        >>> ToolResult.fail("Query is required")
    """

    success: bool = Field(..., description="Whether the invocation succeeded")
    data: Optional[Any] = Field(default=None, description="Result payload")
    error: Optional[str] = Field(default=None, description="Error message")
    metadata: Optional[ToolResultMetadata] = Field(
        default=None, description="Execution metadata"
    )

    @model_validator(mode="after")
    def check_outcome(self) -> "ToolResult":
        """Enforce the success/data/error invariant."""
        if self.success:
            if self.data is None:
                raise ValueError("successful result requires data")
            if self.error is not None:
                raise ValueError("successful result cannot carry an error")
        elif not self.error:
            raise ValueError("failed result requires an error message")
        return self

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        """Build a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        """Build a failed result."""
        return cls(success=False, error=error)

    def to_message_content(self) -> str:
        """
        Serialize for a tool-role chat message.

        Returns:
            JSON of the data on success, or of {"error": ...} on failure.
        """
        payload = self.data if self.success else {"error": self.error}
        return json.dumps(payload, default=str)


class ToolValidationResult(BaseModel):
    """Outcome of ToolManager.validate_tool()."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


class ToolStats(BaseModel):
    """Per-tool usage counters."""

    call_count: int = 0
    last_call_time: Optional[float] = None
    cache_size: int = 0


# =============================================================================
# ToolCall
# =============================================================================


class ToolCall(BaseModel):
    """
    A model-requested invocation of a named tool.

    Parsed from the tool_calls field of a phase-1 LLM response.

    Attributes:
        id: Unique identifier for this tool call.
        name: Name of the tool to execute.
        arguments: Parsed JSON arguments (empty when unparseable).
    """

    id: str = Field(..., description="Unique tool call identifier")
    name: str = Field(..., description="Name of tool to execute")
    arguments: dict[str, Any] = Field(
        default_factory=dict, description="Arguments for tool"
    )

    @classmethod
    def from_openai_format(cls, tool_call: dict[str, Any]) -> "ToolCall":
        """
        Parse a ToolCall from OpenAI's tool_calls format.

        Args:
            tool_call: {"id": ..., "type": "function",
                        "function": {"name": ..., "arguments": "<json>"}}

        Returns:
            ToolCall instance with parsed arguments.
        """
        function = tool_call.get("function") or {}
        arguments_str = function.get("arguments") or "{}"

        try:
            arguments = json.loads(arguments_str)
        except json.JSONDecodeError:
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}

        return cls(
            id=tool_call.get("id") or "",
            name=function.get("name") or "",
            arguments=arguments,
        )
