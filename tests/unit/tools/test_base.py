"""
Tests for Tool.execute_with_retry and its policies.

Test Categories:
1. TestCaching - in-process result cache
2. TestRetry - linear retry and error propagation
3. TestRateLimiting - WAIT and REJECT policies
4. TestTimeout - per-attempt timeout
5. TestTTLCache - lazy expiry and LRU bound
6. TestConfigPinning - explicit config survives registry defaults
"""

import asyncio
import time
from typing import Any, Optional

import pytest

from campaign_agent.core.config import RateLimitPolicy
from campaign_agent.core.exceptions import RateLimitError, ToolExecutionError
from campaign_agent.models.tools import RateLimit, ToolMetadata, ToolResult
from campaign_agent.tools.base import _MISSING, RateLimiter, Tool, TTLCache


# =============================================================================
# Test Tools
# =============================================================================


class CountingTool(Tool):
    """Echoes its input; optionally fails the first `failures` calls."""

    def __init__(
        self,
        failures: int = 0,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        rate_limit: Optional[RateLimit] = None,
        policy: RateLimitPolicy = RateLimitPolicy.WAIT,
        **config: Any,
    ) -> None:
        config.setdefault("retry_delay_seconds", 0.0)
        super().__init__(
            ToolMetadata(
                name="echo",
                description="Echo the input",
                category="utility",
                rate_limit=rate_limit,
            ),
            config,
            rate_limit_policy=policy,
        )
        self.calls = 0
        self.failures = failures
        self.error = error or RuntimeError("upstream exploded")
        self.delay = delay

    async def execute(self, input: dict[str, Any]) -> ToolResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.failures:
            raise self.error
        if input.get("fail"):
            return ToolResult.fail("bad input")
        return ToolResult.ok(dict(input))


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


# =============================================================================
# Caching
# =============================================================================


class TestCaching:
    """Identical inputs within the TTL execute once."""

    async def test_second_call_is_cache_hit(self) -> None:
        tool = CountingTool()

        first = await tool.execute_with_retry({"q": "a"})
        second = await tool.execute_with_retry({"q": "a"})

        assert tool.calls == 1
        assert first.metadata.cache_hit is False
        assert second.metadata.cache_hit is True
        assert second.data == first.data

    async def test_key_ignores_argument_order(self) -> None:
        tool = CountingTool()

        await tool.execute_with_retry({"a": 1, "b": 2})
        await tool.execute_with_retry({"b": 2, "a": 1})

        assert tool.calls == 1

    def test_key_ignores_session_context(self) -> None:
        tool = CountingTool()

        first = tool.generate_cache_key({"query": "dune", "context": {"widgetId": "a"}})
        second = tool.generate_cache_key(
            {"query": "dune", "context": {"widgetId": "a", "lastAnalysisKey": "k"}}
        )

        assert first == second == 'echo_{"query": "dune"}'

    async def test_changed_context_is_cache_hit(self) -> None:
        tool = CountingTool()

        await tool.execute_with_retry({"q": "a", "context": {"widgetId": "w1"}})
        second = await tool.execute_with_retry({"q": "a", "context": {"lastAnalysisKey": "k"}})

        assert tool.calls == 1
        assert second.metadata.cache_hit is True

    async def test_cache_disabled_executes_every_time(self) -> None:
        tool = CountingTool(cache_enabled=False)

        await tool.execute_with_retry({"q": "a"})
        await tool.execute_with_retry({"q": "a"})

        assert tool.calls == 2

    async def test_failed_results_are_not_cached(self) -> None:
        tool = CountingTool()

        first = await tool.execute_with_retry({"fail": True})
        await tool.execute_with_retry({"fail": True})

        assert first.success is False
        assert tool.calls == 2

    async def test_clear_cache(self) -> None:
        tool = CountingTool()
        await tool.execute_with_retry({"q": "a"})

        tool.clear_cache()
        await tool.execute_with_retry({"q": "a"})

        assert tool.calls == 2
        assert tool.get_stats().cache_size == 1


# =============================================================================
# Retry
# =============================================================================


class TestRetry:
    """Exceptions are retried; exhausting attempts re-raises the last one."""

    async def test_recovers_after_transient_failure(self) -> None:
        tool = CountingTool(failures=1, max_retries=3)

        result = await tool.execute_with_retry({"q": "a"})

        assert result.success is True
        assert result.metadata.retries == 1
        assert tool.calls == 2

    async def test_exhausted_attempts_reraise_original_error(self) -> None:
        error = ToolExecutionError("HTTP 503", tool_name="echo")
        tool = CountingTool(failures=10, error=error, max_retries=3)

        with pytest.raises(ToolExecutionError) as exc_info:
            await tool.execute_with_retry({"q": "a"})

        assert exc_info.value is error
        assert tool.calls == 3

    async def test_failed_result_is_not_retried(self) -> None:
        tool = CountingTool(max_retries=3)

        result = await tool.execute_with_retry({"fail": True})

        assert result.error == "bad input"
        assert tool.calls == 1

    async def test_linear_backoff(self, monkeypatch: pytest.MonkeyPatch) -> None:
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        tool = CountingTool(failures=10, max_retries=3, retry_delay_seconds=2.0)
        monkeypatch.setattr("campaign_agent.tools.base.asyncio.sleep", fake_sleep)

        with pytest.raises(RuntimeError):
            await tool.execute_with_retry({"q": "a"})

        assert delays == [2.0, 4.0]


# =============================================================================
# Rate Limiting
# =============================================================================


class TestRateLimiting:
    """Trailing-window limits with WAIT and REJECT policies."""

    async def test_reject_raises_without_retry(self) -> None:
        tool = CountingTool(
            rate_limit=RateLimit(requests=1, window_seconds=60),
            policy=RateLimitPolicy.REJECT,
            max_retries=3,
        )
        await tool.execute_with_retry({"q": "a"})

        with pytest.raises(RateLimitError) as exc_info:
            await tool.execute_with_retry({"q": "b"})

        assert tool.calls == 1
        assert exc_info.value.limit == 1
        assert exc_info.value.retry_after > 0

    async def test_cache_hits_do_not_consume_slots(self) -> None:
        tool = CountingTool(
            rate_limit=RateLimit(requests=2, window_seconds=60),
            policy=RateLimitPolicy.REJECT,
        )
        await tool.execute_with_retry({"q": "a"})
        hit = await tool.execute_with_retry({"q": "a"})

        result = await tool.execute_with_retry({"q": "b"})

        assert hit.metadata.cache_hit is True
        assert result.success is True
        with pytest.raises(RateLimitError):
            await tool.execute_with_retry({"q": "c"})

    async def test_wait_policy_sleeps_until_window_frees(self) -> None:
        tool = CountingTool(
            rate_limit=RateLimit(requests=1, window_seconds=0.1),
            policy=RateLimitPolicy.WAIT,
        )
        await tool.execute_with_retry({"q": "a"})

        start = time.monotonic()
        result = await tool.execute_with_retry({"q": "b"})

        assert result.success is True
        assert time.monotonic() - start >= 0.05
        assert tool.calls == 2

    def test_limiter_window_slides(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(RateLimit(requests=2, window_seconds=10), clock=clock)

        limiter.record()
        limiter.record()
        assert limiter.seconds_until_available() == pytest.approx(10.0)

        clock.now += 4
        assert limiter.seconds_until_available() == pytest.approx(6.0)

        clock.now += 6
        assert limiter.seconds_until_available() == 0.0
        assert len(limiter) == 0

    def test_policy_can_be_switched(self) -> None:
        tool = CountingTool(rate_limit=RateLimit(requests=1, window_seconds=60))

        tool.set_rate_limit_policy(RateLimitPolicy.REJECT)

        assert tool._rate_limiter.policy is RateLimitPolicy.REJECT


# =============================================================================
# Timeout
# =============================================================================


class TestTimeout:
    """Attempts exceeding timeout_seconds fail with ToolExecutionError."""

    async def test_slow_attempt_times_out(self) -> None:
        tool = CountingTool(delay=0.2, timeout_seconds=0.02, max_retries=1)

        with pytest.raises(ToolExecutionError, match="timed out"):
            await tool.execute_with_retry({"q": "a"})

        # The abandoned attempt is not cancelled and still completes.
        await asyncio.sleep(0.3)
        assert tool.calls == 1

    async def test_timeout_is_retried(self) -> None:
        tool = CountingTool(delay=0.1, timeout_seconds=0.02, max_retries=2)

        with pytest.raises(ToolExecutionError):
            await tool.execute_with_retry({"q": "a"})

        await asyncio.sleep(0.15)
        assert tool.calls == 2


# =============================================================================
# TTLCache
# =============================================================================


class TestTTLCache:
    """Lazy TTL expiry and LRU eviction."""

    def test_entry_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", {"v": 1})

        assert cache.get("k", ttl_seconds=10) == {"v": 1}

        clock.now += 10
        assert cache.get("k", ttl_seconds=10) is _MISSING
        assert "k" not in cache

    def test_lru_eviction(self) -> None:
        cache = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a", ttl_seconds=60)

        cache.set("c", 3)

        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_falsy_values_are_cached(self) -> None:
        cache = TTLCache()
        cache.set("empty", [])

        assert cache.get("empty", ttl_seconds=60) == []


# =============================================================================
# Config Pinning
# =============================================================================


class TestConfigPinning:
    """Fields set explicitly are never overridden by registry defaults."""

    def test_apply_defaults_skips_pinned_fields(self) -> None:
        tool = CountingTool(max_retries=2)

        tool.apply_defaults({"max_retries": 5, "timeout_seconds": 9.0})

        assert tool.config.max_retries == 2
        assert tool.config.timeout_seconds == 9.0

    def test_update_config_pins_fields(self) -> None:
        tool = CountingTool()
        tool.update_config({"cache_ttl_seconds": 5.0})

        tool.apply_defaults({"cache_ttl_seconds": 300.0})

        assert tool.config.cache_ttl_seconds == 5.0

    def test_config_property_is_a_copy(self) -> None:
        tool = CountingTool()

        tool.config.enabled = False

        assert tool.is_enabled() is True

    def test_default_function_spec(self) -> None:
        spec = CountingTool().get_function_spec()

        assert spec["type"] == "function"
        assert spec["function"]["name"] == "echo"
        assert spec["function"]["parameters"]["type"] == "object"
