"""
Agent Service

Thin facade composing the AgentEngine, the ToolManager and the durable
transcript. It persists each turn's messages, tracks request metrics,
retries whole turns and derives the advisory health status.

Retry semantics: process_with_retry() reuses one turn id for every attempt.
Transcript appends carrying that id are deduplicated by the history store,
so a retried turn never duplicates its user message, context note or
reply. Tool side effects inside the engine are not deduplicated and stay
at-least-once.

Pattern: Facade over engine, registry and history store
Pattern: Retry with linear backoff at the orchestration level
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Optional

from campaign_agent.core.exceptions import AgentValidationError
from campaign_agent.models.domain import (
    AgentSession,
    ChatResponse,
    HealthState,
    HealthStatus,
    StoredMessage,
)
from campaign_agent.observability.metrics import record_chat_turn
from campaign_agent.services.engine import AgentEngine
from campaign_agent.sessions.store import SessionHistoryStore
from campaign_agent.tools.base import Tool
from campaign_agent.tools.manager import ToolManager


logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_MAX_SESSIONS = 1000
DEFAULT_CONTEXT_MAX_CHARS = 1500

DEGRADED_ERROR_RATE = 0.1
UNHEALTHY_ERROR_RATE = 0.3
DEGRADED_SESSION_RATIO = 0.8


class AgentService:
    """
    Entry point used by the HTTP layer.

    Args:
        engine: The chat turn orchestrator.
        tool_manager: The tool registry the engine dispatches to.
        history_store: Durable per-session transcript.
        model: Model name reported in response metadata.

    Example:
        >>> service = AgentService(engine, tool_manager, history_store)
        >>> response = await service.process_with_retry("Summarize last week")
    """

    def __init__(
        self,
        engine: AgentEngine,
        tool_manager: ToolManager,
        history_store: SessionHistoryStore,
        *,
        model: str = "gpt-5-mini",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        context_max_chars: int = DEFAULT_CONTEXT_MAX_CHARS,
    ) -> None:
        self._engine = engine
        self._tools = tool_manager
        self._history = history_store
        self._model = model
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds
        self._max_sessions = max_sessions
        self._context_max_chars = context_max_chars

        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._total_response_time_ms = 0.0

    @property
    def engine(self) -> AgentEngine:
        return self._engine

    @property
    def tool_manager(self) -> ToolManager:
        return self._tools

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        self._engine.start_session_cleanup()

    async def stop(self) -> None:
        await self._engine.stop_session_cleanup()

    # =========================================================================
    # Chat
    # =========================================================================

    async def process_chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        turn_id: Optional[str] = None,
    ) -> ChatResponse:
        """
        Persist the user message, run one engine turn and persist the reply.

        Raises:
            AgentValidationError: If the message is empty.
            Exception: Any engine failure, after it is counted.
        """
        if not isinstance(message, str) or not message.strip():
            raise AgentValidationError("Message is required", field="message")

        start = time.perf_counter()
        self._total_requests += 1
        sid = session_id or self._engine.generate_session_id()
        # The engine drops messages tagged with this turn id from replayed history.
        turn_id = turn_id or uuid.uuid4().hex

        try:
            await self._history.append(
                sid, StoredMessage(role="user", content=message, turn_id=turn_id)
            )
            if context:
                note = json.dumps(context, default=str)[: self._context_max_chars]
                await self._history.append(
                    sid,
                    StoredMessage(role="assistant", content=f"[context] {note}", turn_id=turn_id),
                    marker="context",
                )

            result = await self._engine.process_message(message, sid, context, turn_id=turn_id)

            await self._history.append(
                result.session_id,
                StoredMessage(role="assistant", content=result.response, turn_id=turn_id),
                marker="reply",
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self._update_metrics(elapsed_ms, success=False)
            record_chat_turn("error", elapsed_ms / 1000)
            logger.error(f"Chat request failed for {sid}: {e}")
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._update_metrics(elapsed_ms, success=True)
        record_chat_turn("success", elapsed_ms / 1000)

        return ChatResponse(
            response=result.response,
            session_id=result.session_id,
            metadata={
                "response_time_ms": round(elapsed_ms, 3),
                "tools_used": result.metadata.get("tools_used", []),
                "memory_size": result.metadata.get("memory_size", 0),
                "model": self._model,
            },
            context=context,
        )

    async def process_with_retry(
        self,
        message: str,
        session_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        max_retries: Optional[int] = None,
    ) -> ChatResponse:
        """
        Run process_chat() up to max_retries times with linear backoff.

        All attempts share one session id and one turn id. Input errors are
        raised immediately without retry.
        """
        retries = max_retries if max_retries is not None else self._max_retries
        if retries < 1:
            raise AgentValidationError(
                "max_retries must be at least 1", field="max_retries", value=retries
            )
        sid = session_id or self._engine.generate_session_id()
        turn_id = uuid.uuid4().hex
        last_error: Optional[Exception] = None

        for attempt in range(1, retries + 1):
            try:
                return await self.process_chat(message, sid, context, turn_id=turn_id)
            except AgentValidationError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"Chat attempt {attempt}/{retries} failed for {sid}: {e}")
                if attempt < retries:
                    await asyncio.sleep(self._retry_delay_seconds * attempt)

        logger.error(f"All {retries} chat attempts failed for {sid}")
        assert last_error is not None
        raise last_error

    def _update_metrics(self, response_time_ms: float, success: bool) -> None:
        self._total_response_time_ms += response_time_ms
        if success:
            self._successful_requests += 1
        else:
            self._failed_requests += 1

    # =========================================================================
    # Sessions
    # =========================================================================

    def get_session(self, session_id: str) -> Optional[AgentSession]:
        return self._engine.get_session(session_id)

    def get_all_sessions(self) -> list[AgentSession]:
        return self._engine.get_all_sessions()

    def clear_session(self, session_id: str) -> bool:
        return self._engine.clear_session(session_id)

    async def get_history(self, session_id: str, limit: Optional[int] = None) -> list[StoredMessage]:
        return await self._history.get_history(session_id, limit)

    # =========================================================================
    # Tools
    # =========================================================================

    def register_tool(self, tool: Tool) -> bool:
        return self._tools.register_tool(tool)

    def unregister_tool(self, name: str) -> bool:
        return self._tools.unregister_tool(name)

    def enable_tool(self, name: str) -> bool:
        return self._tools.enable_tool(name)

    def disable_tool(self, name: str) -> bool:
        return self._tools.disable_tool(name)

    def get_tool_stats(self) -> dict[str, dict[str, Any]]:
        return self._tools.get_tool_stats()

    def clear_all_caches(self) -> int:
        return self._tools.clear_all_caches()

    # =========================================================================
    # Metrics and Health
    # =========================================================================

    def get_metrics(self) -> dict[str, Any]:
        engine_metrics = self._engine.get_metrics()
        return {
            "total_requests": self._total_requests,
            "successful_requests": self._successful_requests,
            "failed_requests": self._failed_requests,
            "average_response_time": (
                self._total_response_time_ms / self._total_requests
                if self._total_requests
                else 0.0
            ),
            "engine": engine_metrics.model_dump(),
            "tools": self._tools.get_tool_stats(),
            "sessions": {
                "total": engine_metrics.total_sessions,
                "active": engine_metrics.active_sessions,
            },
        }

    def get_health_status(self) -> HealthStatus:
        """
        Advisory health derived from the engine error rate and active-session
        saturation. Read-only; nothing is remediated.
        """
        engine_metrics = self._engine.get_metrics()
        error_rate = engine_metrics.error_rate
        active = engine_metrics.active_sessions

        status = HealthState.HEALTHY
        if error_rate > DEGRADED_ERROR_RATE or active > self._max_sessions * DEGRADED_SESSION_RATIO:
            status = HealthState.DEGRADED
        if error_rate > UNHEALTHY_ERROR_RATE or active >= self._max_sessions:
            status = HealthState.UNHEALTHY

        return HealthStatus(
            status=status,
            details={
                "error_rate": error_rate,
                "active_sessions": active,
                "max_sessions": self._max_sessions,
                "total_tools": len(self._tools.get_tool_names()),
                "engine_status": engine_metrics.model_dump(),
            },
        )
