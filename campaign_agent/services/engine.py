"""
Agent Engine

This module runs one chat turn through the two-phase LLM/tool protocol:

1. Validate the message and resolve or create the session.
2. Build the prompt: system policy, truncated session context, the recent
   transcript (excluding messages of the current turn) and the user message.
3. Phase 1 (tool selection): call the LLM with the enabled tools' function
   specs and tool_choice="auto". No tool calls means the content is the
   answer.
4. Execute each requested tool call sequentially. Unknown tools become a
   tool-role error message. Caller-supplied session context is merged into
   the arguments and always wins for scope identifiers.
5. Phase 2 (synthesis): resend the conversation including tool results
   with tools disabled (tool_choice="none").
6. Redact sensitive identifiers from the output, update metrics and
   session stats.

LLM failures propagate unmodified; the service decides whether to retry.
The engine does not serialize turns of the same session: concurrent turns
race on session stats and the last write wins.

Pattern: Service Layer (orchestrates provider, tools and history)
Pattern: Dependency Injection (LLM client, tool manager, history store)
"""

import asyncio
import contextlib
import json
import logging
import random
import re
import string
import time
from collections import Counter
from typing import Any, Optional

from campaign_agent.core.exceptions import (
    AgentException,
    AgentValidationError,
    LLMTimeoutError,
    ToolNotFoundError,
)
from campaign_agent.models.domain import (
    AgentMetrics,
    AgentSession,
    ChatTurnResult,
    utc_now,
)
from campaign_agent.models.tools import ToolCall, ToolKind, ToolResult
from campaign_agent.observability.metrics import (
    record_llm_call,
    record_tool_execution,
    set_active_sessions,
)
from campaign_agent.observability.tracing import create_span
from campaign_agent.providers.base import LLMClient, ReasoningEffort, ToolChoice
from campaign_agent.sessions.store import SessionHistoryStore
from campaign_agent.tools.manager import ToolManager


logger = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT_SECONDS = 3600
DEFAULT_CLEANUP_INTERVAL_SECONDS = 300.0
DEFAULT_HISTORY_WINDOW = 12
DEFAULT_CONTEXT_MAX_CHARS = 1500
DEFAULT_TIME_RANGE = "14d"

# Values shorter than this are too generic to redact safely.
MIN_REDACT_LENGTH = 8
REDACTED = "[redacted]"

SENSITIVE_CONTEXT_KEYS = ("widgetId",)

SYSTEM_PROMPT = "\n".join(
    [
        "You are the campaign analytics assistant for a messaging platform.",
        "Policies:",
        "- Prefer calling tools when data is needed. Use 'analyzeCampaigns' for metrics, "
        "failures, template usage, message analytics, and attribution.",
        "- Always use the provided session context (especially widgetId) and do not ask "
        "for it again if present.",
        "- Never reveal or display internal identifiers (e.g., widgetId).",
        "- Avoid repeating clarifying questions; ask at most once, and only for critical "
        "missing info.",
        "- Minimize tool calls: reuse prior results in this session when the request "
        "doesn't change timeRange or flags.",
        "- Default timeRange: 14d unless the user specifies (e.g., 7d).",
        "Capabilities:",
        "- Campaign analysis: compute deliverability, engagement, error-code insights "
        "(e.g., 131049, 131026, 131048, etc.), root causes, and actionable optimizations.",
        "- Attribution: summarize orders, revenue, AOV; highlight top campaigns.",
        "- Book search: find books by title, author or subject.",
        "Output style: concise, in the user's language, with clear bullets and sections "
        "(Summary, Problems, Root causes, Optimizations, Attribution, Recommendations).",
    ]
)


def new_session_id() -> str:
    """session_{epoch ms}_{9 random base36 characters}"""
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(random.choices(alphabet, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def redact_sensitive_identifiers(
    text: str,
    metadata: dict[str, Any],
    keys: tuple[str, ...] = SENSITIVE_CONTEXT_KEYS,
) -> str:
    """Replace every case-insensitive occurrence of the configured context values."""
    if not text:
        return text
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, str) and len(value) >= MIN_REDACT_LENGTH:
            text = re.sub(re.escape(value), REDACTED, text, flags=re.IGNORECASE)
    return text


def _first_message(response: dict[str, Any]) -> dict[str, Any]:
    choices = response.get("choices") or []
    if not choices:
        return {}
    return choices[0].get("message") or {}


class AgentEngine:
    """
    Orchestrates chat turns over an LLM client, a tool registry and the
    durable transcript.

    Sessions held here are the per-process context cache; the transcript
    lives in the SessionHistoryStore.

    Example:
        >>> engine = AgentEngine(llm, tool_manager, history_store)
        >>> result = await engine.process_message(
        ...     "How did my campaigns do last week?",
        ...     context={"widgetId": "507f1f77bcf86cd799439011"},
        ... )
    """

    def __init__(
        self,
        llm: LLMClient,
        tool_manager: ToolManager,
        history_store: SessionHistoryStore,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        llm_timeout_seconds: Optional[float] = None,
        session_timeout_seconds: float = DEFAULT_SESSION_TIMEOUT_SECONDS,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        context_max_chars: int = DEFAULT_CONTEXT_MAX_CHARS,
        system_prompt: str = SYSTEM_PROMPT,
        sensitive_keys: tuple[str, ...] = SENSITIVE_CONTEXT_KEYS,
    ) -> None:
        self._llm = llm
        self._tools = tool_manager
        self._history = history_store
        self._model = model
        self._max_tokens = max_tokens
        self._llm_timeout_seconds = llm_timeout_seconds
        self._session_timeout_seconds = session_timeout_seconds
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._history_window = history_window
        self._context_max_chars = context_max_chars
        self._system_prompt = system_prompt
        self._sensitive_keys = sensitive_keys

        self._sessions: dict[str, AgentSession] = {}
        self._cleanup_task: Optional[asyncio.Task[None]] = None

        self._total_messages = 0
        self._total_errors = 0
        self._total_response_time_ms = 0.0
        self._tool_usage: Counter[str] = Counter()

    @property
    def tool_manager(self) -> ToolManager:
        return self._tools

    @property
    def session_timeout_seconds(self) -> float:
        return self._session_timeout_seconds

    @staticmethod
    def generate_session_id() -> str:
        return new_session_id()

    # =========================================================================
    # Chat Turn
    # =========================================================================

    async def process_message(
        self,
        message: str,
        session_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        turn_id: Optional[str] = None,
    ) -> ChatTurnResult:
        """
        Run one chat turn.

        Args:
            message: The user message.
            session_id: Existing session id; a new one is generated if absent.
            context: Caller context merged into the session metadata.
            turn_id: Id of the turn; stored messages carrying it are left
                out of the replayed history.

        Returns:
            ChatTurnResult with the redacted response and turn metadata.

        Raises:
            AgentValidationError: If the message is empty.
            ProviderError: If either LLM call fails.
        """
        if not isinstance(message, str) or not message.strip():
            raise AgentValidationError("Message is required", field="message")

        sid = session_id or self.generate_session_id()
        start = time.perf_counter()
        session = self._touch_session(sid, context)

        try:
            output, tools_used = await self._run_turn(sid, session, message, turn_id)
        except Exception as e:
            self._total_errors += 1
            session.stats.error_count += 1
            logger.error(f"Chat turn failed for {sid}: {e}")
            raise

        output = redact_sensitive_identifiers(output, session.metadata, self._sensitive_keys)
        response_time_ms = (time.perf_counter() - start) * 1000
        self._record_turn(session, response_time_ms, tools_used)

        memory_size = len(await self._history.get_history(sid))
        logger.info(
            f"Processed message for {sid} in {response_time_ms:.0f}ms "
            f"(tools: {', '.join(tools_used) or 'none'})"
        )

        return ChatTurnResult(
            response=output,
            session_id=sid,
            metadata={
                "response_time_ms": round(response_time_ms, 3),
                "tools_used": list(dict.fromkeys(tools_used)),
                "memory_size": memory_size,
            },
        )

    async def _run_turn(
        self,
        sid: str,
        session: AgentSession,
        message: str,
        turn_id: Optional[str],
    ) -> tuple[str, list[str]]:
        messages = await self._build_messages(sid, session, message, turn_id)
        tool_specs = [tool.get_function_spec() for tool in self._tools.get_enabled_tools()]

        response = await self._call_llm(
            "tool_selection", messages, tool_specs, "auto", "minimal"
        )
        reply = _first_message(response)
        raw_calls = reply.get("tool_calls") or []

        if not raw_calls:
            return reply.get("content") or "", []

        # The assistant message carrying tool_calls must precede the tool results.
        messages.append(
            {
                "role": "assistant",
                "content": reply.get("content"),
                "tool_calls": raw_calls,
            }
        )

        tools_used: list[str] = []
        for raw_call in raw_calls:
            call = ToolCall.from_openai_format(raw_call)
            content = await self._execute_tool_call(call, session)
            messages.append({"role": "tool", "tool_call_id": call.id, "content": content})
            tools_used.append(call.name)

        final = await self._call_llm("synthesis", messages, [], "none", "low")
        return _first_message(final).get("content") or "", tools_used

    async def _build_messages(
        self,
        sid: str,
        session: AgentSession,
        message: str,
        turn_id: Optional[str],
    ) -> list[dict[str, Any]]:
        context_json = json.dumps(session.metadata, default=str)[: self._context_max_chars]

        history = await self._history.get_history(sid)
        if turn_id:
            history = [m for m in history if m.turn_id != turn_id]
        window = history[-self._history_window :] if self._history_window > 0 else []

        return [
            {"role": "system", "content": self._system_prompt},
            {"role": "system", "content": f"Session context: {context_json}"},
            *(m.to_chat_message() for m in window),
            {"role": "user", "content": message},
        ]

    async def _call_llm(
        self,
        phase: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice,
        reasoning_effort: ReasoningEffort,
    ) -> dict[str, Any]:
        attributes = {
            "llm.phase": phase,
            "llm.tool_count": len(tools),
            "llm.message_count": len(messages),
        }
        with create_span(f"llm.{phase}", attributes):
            try:
                response = await self._llm.chat_with_tools(
                    messages,
                    tools,
                    tool_choice,
                    model=self._model,
                    max_tokens=self._max_tokens,
                    reasoning_effort=reasoning_effort,
                    timeout_seconds=self._llm_timeout_seconds,
                )
            except LLMTimeoutError:
                record_llm_call(phase, "timeout")
                raise
            except Exception:
                record_llm_call(phase, "error")
                raise
        record_llm_call(phase, "success")
        return response

    # =========================================================================
    # Tool Calls
    # =========================================================================

    async def _execute_tool_call(self, call: ToolCall, session: AgentSession) -> str:
        """Run one model-requested tool call and return the tool message content."""
        try:
            kind, tool = self._tools.resolve(call.name)
        except ToolNotFoundError as e:
            logger.warning(f"Model requested unknown tool '{call.name}'")
            record_tool_execution(call.name or "unknown", "not_found")
            return json.dumps({"error": e.message})

        if not tool.is_enabled():
            record_tool_execution(tool.name, "disabled")
            return json.dumps({"error": f"Tool '{tool.name}' is disabled"})

        args = dict(call.arguments)
        supplied_context = args.get("context")
        args["context"] = {
            **(supplied_context if isinstance(supplied_context, dict) else {}),
            **session.metadata,
        }
        if kind is ToolKind.ANALYZE_CAMPAIGNS and session.metadata.get("widgetId"):
            args["widgetId"] = session.metadata["widgetId"]

        with create_span("tool.execute", {"tool.name": tool.name}) as span:
            try:
                result = await tool.execute_with_retry(args)
            except AgentException as e:
                logger.warning(f"Tool {tool.name} failed: {e.message}")
                result = ToolResult.fail(e.message)
            except Exception:
                logger.exception(f"Tool {tool.name} raised unexpectedly")
                result = ToolResult.fail(f"Tool '{tool.name}' failed")
            span.set_attribute("tool.success", result.success)
            if result.metadata is not None:
                span.set_attribute("tool.cache_hit", result.metadata.cache_hit)

        record_tool_execution(tool.name, "success" if result.success else "error")

        if kind is ToolKind.ANALYZE_CAMPAIGNS and result.success and isinstance(result.data, dict):
            widget_id = result.data.get("widget_id") or session.metadata.get("widgetId")
            time_range = result.data.get("time_range") or DEFAULT_TIME_RANGE
            session.metadata["lastAnalysisKey"] = tool.generate_cache_key(
                {"widgetId": widget_id, "timeRange": time_range}
            )
            session.metadata["lastAnalysisWidgetId"] = widget_id
            session.metadata["lastAnalysisTimeRange"] = time_range

        return result.to_message_content()

    # =========================================================================
    # Sessions
    # =========================================================================

    def _touch_session(self, sid: str, context: Optional[dict[str, Any]]) -> AgentSession:
        session = self._sessions.get(sid)
        if session is None:
            session = AgentSession(id=sid, metadata=dict(context or {}))
            self._sessions[sid] = session
            set_active_sessions(len(self._sessions))
            logger.debug(f"Created session {sid}")
        else:
            session.last_activity = utc_now()
            if context:
                session.metadata.update(context)
        return session

    def _record_turn(
        self,
        session: AgentSession,
        response_time_ms: float,
        tools_used: list[str],
    ) -> None:
        stats = session.stats
        stats.message_count += 1
        n = stats.message_count
        stats.average_response_time = (
            stats.average_response_time * (n - 1) + response_time_ms
        ) / n
        for name in tools_used:
            stats.tool_usage[name] = stats.tool_usage.get(name, 0) + 1
        session.last_activity = utc_now()

        self._total_messages += 1
        self._total_response_time_ms += response_time_ms
        self._tool_usage.update(tools_used)

    def get_session(self, session_id: str) -> Optional[AgentSession]:
        return self._sessions.get(session_id)

    def get_all_sessions(self) -> list[AgentSession]:
        return list(self._sessions.values())

    def clear_session(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            set_active_sessions(len(self._sessions))
            logger.info(f"Cleared session {session_id}")
        return removed

    def cleanup_expired_sessions(self) -> int:
        """Remove sessions idle longer than the session timeout."""
        now = utc_now()
        expired = [
            sid
            for sid, session in self._sessions.items()
            if session.is_idle(self._session_timeout_seconds, now)
        ]
        for sid in expired:
            del self._sessions[sid]

        if expired:
            logger.info(f"Session cleanup removed {len(expired)} sessions")
        set_active_sessions(len(self._sessions))
        return len(expired)

    def start_session_cleanup(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            f"Session cleanup scheduled every {self._cleanup_interval_seconds:.0f}s"
        )

    async def stop_session_cleanup(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval_seconds)
            try:
                self.cleanup_expired_sessions()
            except Exception:
                logger.exception("Session cleanup failed")

    # =========================================================================
    # Metrics
    # =========================================================================

    def get_metrics(self) -> AgentMetrics:
        now = utc_now()
        active = sum(
            1
            for session in self._sessions.values()
            if not session.is_idle(self._session_timeout_seconds, now)
        )
        attempted = self._total_messages + self._total_errors
        return AgentMetrics(
            total_sessions=len(self._sessions),
            active_sessions=active,
            total_messages=self._total_messages,
            average_response_time=(
                self._total_response_time_ms / self._total_messages
                if self._total_messages
                else 0.0
            ),
            tool_usage=dict(self._tool_usage),
            error_rate=self._total_errors / attempted if attempted else 0.0,
            memory_usage=len(self._sessions),
        )
