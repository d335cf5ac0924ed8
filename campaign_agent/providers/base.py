"""
LLM Client Base

This module defines the abstract chat capability the agent engine consumes.

Pattern: Ports and Adapters (the engine depends on this port, not on an SDK)
Pattern: @abstractmethod for enforcement
"""

from abc import ABC, abstractmethod
from typing import Any, Literal, Optional, Union


ReasoningEffort = Literal["minimal", "low", "medium", "high"]
ToolChoice = Union[Literal["auto", "none", "required"], dict[str, Any]]


class LLMClient(ABC):
    """
    Abstract chat capability with tool calling.

    Implementations must enforce a per-call timeout that cancels the
    underlying request and raises LLMTimeoutError.

    Example:
        >>> class ScriptedClient(LLMClient):
        ...     async def chat(self, messages, **options): return "hi"
        ...     async def chat_with_tools(self, messages, tools, tool_choice="auto", **options):
        ...         return {"choices": [{"message": {"role": "assistant", "content": "hi"}}]}
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        reasoning_effort: Optional[ReasoningEffort] = None,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        """
        Plain chat completion.

        Args:
            messages: OpenAI-format chat messages.
            model: Model override.
            max_tokens: Completion token cap override.
            reasoning_effort: Reasoning effort hint for reasoning models.
            timeout_seconds: Per-call timeout override.

        Returns:
            The assistant message content ("" when absent).

        Raises:
            LLMTimeoutError: If the call exceeds its timeout.
            ProviderError: On API or network errors.
            RateLimitError: When the provider throttles the request.
        """
        ...

    @abstractmethod
    async def chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice = "auto",
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        reasoning_effort: Optional[ReasoningEffort] = None,
        timeout_seconds: Optional[float] = None,
    ) -> dict[str, Any]:
        """
        Chat completion with function tools.

        Args:
            messages: OpenAI-format chat messages, including assistant
                tool_calls and tool-role results.
            tools: Function specs ({"type": "function", "function": {...}}).
            tool_choice: "auto", "none", "required" or a named function.

        Returns:
            {"choices": [{"message": {"role", "content", "tool_calls"?}}]}

        Raises:
            LLMTimeoutError: If the call exceeds its timeout.
            ProviderError: On API or network errors.
            RateLimitError: When the provider throttles the request.
        """
        ...

    async def close(self) -> None:
        """Release network resources. Default is a no-op."""
        return None
