"""
Tool Base

This module provides the abstract Tool capability and the cross-cutting
policies wrapped around every tool call: trailing-window rate limiting,
an in-process TTL + LRU result cache, per-attempt timeouts and linear
retry backoff.

Concrete tools implement execute() with the business logic only.
execute_with_retry() applies, in order:

1. Rate limiting (wait for a free slot, or reject, per RateLimitPolicy)
2. Cache lookup (served results carry cache_hit=True)
3. execute() under a per-attempt timeout; successful data is cached
4. Retry on exception with delay = retry_delay_seconds * attempt

Exhausting the attempts re-raises the last exception. RateLimitError
raised by the REJECT policy is never retried.

Timeouts stop waiting for execute() but do not cancel it: the abandoned
attempt keeps running in the background and its outcome is only logged.

Pattern: Template Method (execute_with_retry wraps execute)
Pattern: Retry with linear backoff
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from typing import Any, Callable, Optional, Union

from campaign_agent.core.config import RateLimitPolicy
from campaign_agent.core.exceptions import RateLimitError, ToolExecutionError
from campaign_agent.models.tools import (
    RateLimit,
    ToolConfig,
    ToolKind,
    ToolMetadata,
    ToolResult,
    ToolResultMetadata,
    ToolStats,
)
from campaign_agent.observability.metrics import record_cache_operation


logger = logging.getLogger(__name__)

DEFAULT_CACHE_MAX_ENTRIES = 256

_MISSING = object()


# =============================================================================
# TTLCache
# =============================================================================


class TTLCache:
    """
    In-process result cache with lazy TTL expiry and an LRU size bound.

    Entries are checked against the TTL only when read; there is no
    background sweep. When full, the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock

    def get(self, key: str, ttl_seconds: float) -> Any:
        """Return the cached value, or the module sentinel _MISSING."""
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING

        value, stored_at = entry
        if self._clock() - stored_at >= ttl_seconds:
            del self._entries[key]
            return _MISSING

        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


# =============================================================================
# RateLimiter
# =============================================================================


class RateLimiter:
    """
    Trailing-window limiter over a log of call timestamps.

    acquire() returns once the window admits another call. With the WAIT
    policy it sleeps until the oldest call leaves the window; callers are
    not queued, so concurrent waiters may wake in any order. With REJECT
    it raises RateLimitError immediately.

    record() must be called when the call actually happens; acquire()
    itself does not consume a slot, so cache hits are free.
    """

    def __init__(
        self,
        limit: RateLimit,
        policy: RateLimitPolicy = RateLimitPolicy.WAIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.policy = policy
        self._clock = clock
        self._calls: deque[float] = deque()

    def _prune(self, now: float) -> None:
        window_start = now - self.limit.window_seconds
        while self._calls and self._calls[0] <= window_start:
            self._calls.popleft()

    def seconds_until_available(self) -> float:
        """0.0 if a call is allowed now, else the wait until the next slot."""
        now = self._clock()
        self._prune(now)
        if len(self._calls) < self.limit.requests:
            return 0.0
        return max(self._calls[0] + self.limit.window_seconds - now, 0.0)

    async def acquire(self, tool_name: str) -> None:
        while True:
            wait = self.seconds_until_available()
            if wait <= 0:
                return
            if self.policy == RateLimitPolicy.REJECT:
                raise RateLimitError(
                    f"Rate limit exceeded for tool '{tool_name}'",
                    retry_after=wait,
                    limit=self.limit.requests,
                )
            logger.info(f"Rate limit reached for {tool_name}, waiting {wait:.1f}s")
            await asyncio.sleep(wait)

    def record(self) -> None:
        self._calls.append(self._clock())

    def __len__(self) -> int:
        self._prune(self._clock())
        return len(self._calls)


# =============================================================================
# Tool ABC
# =============================================================================


ConfigInput = Union[ToolConfig, dict[str, Any], None]


class Tool(ABC):
    """
    A single callable capability with its own retry, cache and rate-limit
    policy.

    Fields passed in `config` at construction are pinned: the ToolManager's
    registration defaults never override them.

    Example:
        >>> class EchoTool(Tool):
        ...     async def execute(self, input):
        ...         return ToolResult.ok(input)
        >>> tool = EchoTool(ToolMetadata(name="echo", description="Echo", category="utility"))
        >>> result = await tool.execute_with_retry({"text": "hi"})
    """

    def __init__(
        self,
        metadata: ToolMetadata,
        config: ConfigInput = None,
        rate_limit_policy: RateLimitPolicy = RateLimitPolicy.WAIT,
        cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
    ) -> None:
        if isinstance(config, ToolConfig):
            overrides = config.model_dump(exclude_unset=True)
        else:
            overrides = dict(config or {})

        self._metadata = metadata
        self._config = ToolConfig(**overrides)
        self._pinned: set[str] = set(overrides)
        self._cache = TTLCache(max_entries=cache_max_entries)
        self._rate_limiter: Optional[RateLimiter] = (
            RateLimiter(metadata.rate_limit, rate_limit_policy)
            if metadata.rate_limit
            else None
        )
        self._call_count = 0
        self._last_call_time: Optional[float] = None

    # =========================================================================
    # Business Logic
    # =========================================================================

    @abstractmethod
    async def execute(self, input: dict[str, Any]) -> ToolResult:
        """
        Run the tool once.

        Input errors are returned as ToolResult.fail(); transient failures
        are raised so execute_with_retry() can retry them.
        """
        ...

    # =========================================================================
    # Cross-cutting Wrapper
    # =========================================================================

    async def execute_with_retry(self, input: dict[str, Any]) -> ToolResult:
        """
        Execute with rate limiting, caching, timeout and retry.

        Returns:
            The tool's ToolResult with execution metadata attached.

        Raises:
            RateLimitError: Immediately, if the REJECT policy applies.
            Exception: The last error once max_retries attempts have failed.
        """
        start = time.perf_counter()
        name = self._metadata.name
        max_retries = self._config.max_retries
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_retries + 1):
            try:
                if self._rate_limiter is not None:
                    await self._rate_limiter.acquire(name)

                cache_key: Optional[str] = None
                if self._config.cache_enabled:
                    cache_key = self.generate_cache_key(input)
                    cached = self._cache.get(cache_key, self._config.cache_ttl_seconds)
                    if cached is not _MISSING:
                        record_cache_operation(name, "hit")
                        return ToolResult(
                            success=True,
                            data=cached,
                            metadata=ToolResultMetadata(
                                execution_time_ms=_elapsed_ms(start),
                                cache_hit=True,
                                retries=attempt - 1,
                            ),
                        )
                    record_cache_operation(name, "miss")

                if self._rate_limiter is not None:
                    self._rate_limiter.record()
                self._call_count += 1
                self._last_call_time = time.time()

                result = await self._run_attempt(input)

                if result.success and cache_key is not None:
                    self._cache.set(cache_key, result.data)

                return result.model_copy(
                    update={
                        "metadata": ToolResultMetadata(
                            execution_time_ms=_elapsed_ms(start),
                            cache_hit=False,
                            retries=attempt - 1,
                        )
                    }
                )

            except RateLimitError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Tool {name} attempt {attempt}/{max_retries} failed: {e}"
                )
                if attempt < max_retries:
                    await asyncio.sleep(self._config.retry_delay_seconds * attempt)

        assert last_error is not None
        raise last_error

    async def _run_attempt(self, input: dict[str, Any]) -> ToolResult:
        """Await one execute() call, giving up after the configured timeout."""
        timeout = self._config.timeout_seconds
        task = asyncio.ensure_future(self.execute(input))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError as e:
            task.add_done_callback(self._log_abandoned_attempt)
            raise ToolExecutionError(
                f"Tool '{self._metadata.name}' timed out after {timeout}s",
                tool_name=self._metadata.name,
            ) from e

    def _log_abandoned_attempt(self, task: "asyncio.Future[ToolResult]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                f"Abandoned attempt of {self._metadata.name} failed after timeout: {error}"
            )
        else:
            logger.info(f"Abandoned attempt of {self._metadata.name} finished after timeout")

    def generate_cache_key(self, input: dict[str, Any]) -> str:
        """
        Cache key for an input.

        The default is the tool name plus the serialized input without the
        injected session ``context``. Tools whose inputs have equivalent
        spellings override this to normalize them.
        """
        arguments = {k: v for k, v in input.items() if k != "context"}
        serialized = json.dumps(arguments, sort_keys=True, default=str)
        return f"{self._metadata.name}_{serialized}"

    # =========================================================================
    # LLM-facing Spec
    # =========================================================================

    def get_function_spec(self) -> dict[str, Any]:
        """
        OpenAI function tool definition.

        The default schema accepts any object; tools with strict inputs
        override it.
        """
        return {
            "type": "function",
            "function": {
                "name": self._metadata.name,
                "description": self._metadata.description,
                "parameters": {
                    "type": "object",
                    "properties": {},
                    "additionalProperties": True,
                },
            },
        }

    # =========================================================================
    # Metadata, Config and Stats
    # =========================================================================

    @property
    def name(self) -> str:
        return self._metadata.name

    @property
    def kind(self) -> Optional[ToolKind]:
        return ToolKind.from_name(self._metadata.name)

    def get_metadata(self) -> ToolMetadata:
        return self._metadata

    @property
    def config(self) -> ToolConfig:
        """A copy of the current runtime config."""
        return self._config.model_copy()

    def update_config(self, changes: Union[ToolConfig, dict[str, Any]]) -> None:
        """
        Merge changes into the config and pin the changed fields.

        Raises:
            pydantic.ValidationError: If the merged config is invalid.
        """
        if isinstance(changes, ToolConfig):
            changes = changes.model_dump(exclude_unset=True)
        self._config = ToolConfig(**{**self._config.model_dump(), **changes})
        self._pinned.update(changes)

    def apply_defaults(self, defaults: dict[str, Any]) -> None:
        """Apply defaults to every config field that is not pinned."""
        unpinned = {k: v for k, v in defaults.items() if k not in self._pinned}
        if unpinned:
            self._config = ToolConfig(**{**self._config.model_dump(), **unpinned})

    def set_rate_limit_policy(self, policy: RateLimitPolicy) -> None:
        if self._rate_limiter is not None:
            self._rate_limiter.policy = policy

    def is_enabled(self) -> bool:
        return self._config.enabled

    def get_stats(self) -> ToolStats:
        return ToolStats(
            call_count=self._call_count,
            last_call_time=self._last_call_time,
            cache_size=len(self._cache),
        )

    def clear_cache(self) -> None:
        self._cache.clear()


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)
