"""
OpenAI Chat Client

This module implements the LLMClient port on top of the OpenAI SDK. The
agent engine uses it for both protocol phases: tool selection with
tool_choice="auto" and synthesis with tool_choice="none".

Design Patterns:
- Ports and Adapters: OpenAIChatClient implements LLMClient
- Timeout by cancellation: asyncio.wait_for cancels the in-flight request

Retries are not performed here. A failed call propagates to the engine and
the whole turn is retried by AgentService.process_with_retry.
"""

import asyncio
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from campaign_agent.core.exceptions import (
    LLMTimeoutError,
    ProviderError,
    RateLimitError,
)
from campaign_agent.providers.base import LLMClient, ReasoningEffort, ToolChoice


logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai"


class OpenAIChatClient(LLMClient):
    """
    OpenAI chat completions adapter.

    Args:
        api_key: OpenAI API key.
        model: Default model for every call.
        max_tokens: Default max_completion_tokens.
        timeout_seconds: Default per-call timeout.
        organization: Optional organization id.
        base_url: Optional custom endpoint URL (Azure OpenAI or proxies).
        client: Pre-built AsyncOpenAI instance (tests).

    Example:
        >>> llm = OpenAIChatClient(api_key="sk-...", model="gpt-5-mini")
        >>> text = await llm.chat([{"role": "user", "content": "Hello"}])
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-5-mini",
        max_tokens: int = 4000,
        timeout_seconds: float = 30.0,
        organization: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds

        if client is not None:
            self._client = client
        else:
            client_kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
            if organization:
                client_kwargs["organization"] = organization
            if base_url:
                client_kwargs["base_url"] = base_url
            self._client = AsyncOpenAI(**client_kwargs)

    @property
    def model(self) -> str:
        """Default model name."""
        return self._model

    # =========================================================================
    # LLMClient
    # =========================================================================

    async def chat(
        self,
        messages: list[dict[str, Any]],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        reasoning_effort: Optional[ReasoningEffort] = None,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        kwargs = self._build_request_kwargs(
            messages, model, max_tokens, reasoning_effort
        )
        response = await self._create(kwargs, timeout_seconds)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

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
        kwargs = self._build_request_kwargs(
            messages, model, max_tokens, reasoning_effort
        )
        # The API rejects tool_choice without tools.
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice

        response = await self._create(kwargs, timeout_seconds)
        return {
            "choices": [
                {"message": self._transform_message(choice.message)}
                for choice in response.choices
            ]
        }

    async def close(self) -> None:
        await self._client.close()

    # =========================================================================
    # Request Execution
    # =========================================================================

    async def _create(
        self, kwargs: dict[str, Any], timeout_seconds: Optional[float]
    ) -> Any:
        """
        Run one completion under a cancelling timeout.

        Raises:
            LLMTimeoutError: When the timeout expires (the request is cancelled).
            RateLimitError: When the API throttles the request.
            ProviderError: On any other SDK or network failure.
        """
        timeout = timeout_seconds or self._timeout_seconds
        try:
            return await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("LLM call timed out after %.1fs", timeout)
            raise LLMTimeoutError(
                f"LLM call timed out after {timeout}s",
                provider=PROVIDER_NAME,
                timeout_seconds=timeout,
            ) from e
        except Exception as e:
            status_code = getattr(e, "status_code", None)
            error_type = self._classify_error(str(e), status_code)
            if error_type == "rate_limit":
                raise RateLimitError(str(e)) from e
            raise ProviderError(
                str(e), provider=PROVIDER_NAME, status_code=status_code
            ) from e

    def _classify_error(self, error_str: str, status_code: Optional[int] = None) -> str:
        """
        Classify an SDK error.

        Returns:
            Error type: 'auth', 'rate_limit', or 'other'.
        """
        error_lower = error_str.lower()

        if (
            status_code == 401
            or "authentication" in error_lower
            or "api key" in error_lower
            or "unauthorized" in error_lower
        ):
            return "auth"

        if status_code == 429 or "rate limit" in error_lower or "429" in error_lower:
            return "rate_limit"

        return "other"

    # =========================================================================
    # Request/Response Helpers
    # =========================================================================

    def _build_request_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: Optional[str],
        max_tokens: Optional[int],
        reasoning_effort: Optional[ReasoningEffort],
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self._model,
            "messages": messages,
            "max_completion_tokens": max_tokens or self._max_tokens,
        }
        if reasoning_effort:
            kwargs["reasoning_effort"] = reasoning_effort
        return kwargs

    def _transform_message(self, msg: Any) -> dict[str, Any]:
        """
        Convert an SDK message into the plain dict the engine consumes.

        Only role, content and tool_calls are kept so the message can be
        sent back verbatim in the synthesis call.
        """
        msg_dict: dict[str, Any] = {
            "role": getattr(msg, "role", "assistant") or "assistant",
            "content": getattr(msg, "content", None),
        }
        tool_calls = getattr(msg, "tool_calls", None)
        if tool_calls:
            msg_dict["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.function.name,
                        "arguments": tc.function.arguments,
                    },
                }
                for tc in tool_calls
            ]
        return msg_dict
