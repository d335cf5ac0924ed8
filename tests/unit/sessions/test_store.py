"""
Tests for SessionHistoryStore - bounded, idempotent chat transcripts.

Pattern: Repository pattern
Pattern: FakeRepository for testing (Percival & Gregory pp. 157)
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from campaign_agent.models.domain import StoredMessage
from campaign_agent.sessions.store import SessionHistoryStore, SessionStoreError


class TestAppendAndRead:
    """Ordered append and read-back."""

    async def test_messages_are_returned_oldest_first(self, history_store) -> None:
        await history_store.append("s1", StoredMessage(role="user", content="one"))
        await history_store.append("s1", StoredMessage(role="assistant", content="two"))

        history = await history_store.get_history("s1")

        assert [m.content for m in history] == ["one", "two"]
        assert history[0].role == "user"

    async def test_sessions_are_isolated(self, history_store) -> None:
        await history_store.append("s1", StoredMessage(role="user", content="mine"))

        assert await history_store.get_history("s2") == []

    async def test_limit_returns_most_recent(self, history_store) -> None:
        for i in range(5):
            await history_store.append("s1", StoredMessage(role="user", content=str(i)))

        history = await history_store.get_history("s1", limit=2)

        assert [m.content for m in history] == ["3", "4"]

    async def test_zero_limit(self, history_store) -> None:
        await history_store.append("s1", StoredMessage(role="user", content="x"))

        assert await history_store.get_history("s1", limit=0) == []

    async def test_history_is_trimmed_to_memory_limit(self, fake_redis) -> None:
        store = SessionHistoryStore(fake_redis, memory_limit=3)
        for i in range(5):
            await store.append("s1", StoredMessage(role="user", content=str(i)))

        history = await store.get_history("s1")

        assert [m.content for m in history] == ["2", "3", "4"]
        assert await fake_redis.llen("chat:history:s1") == 3

    async def test_append_refreshes_ttl(self, fake_redis) -> None:
        store = SessionHistoryStore(fake_redis, ttl_seconds=120)

        await store.append("s1", StoredMessage(role="user", content="x"))

        assert 0 < await fake_redis.ttl("chat:history:s1") <= 120

    async def test_malformed_entries_are_skipped(self, history_store, fake_redis) -> None:
        await fake_redis.rpush("chat:history:s1", "{not json")
        await history_store.append("s1", StoredMessage(role="user", content="ok"))

        history = await history_store.get_history("s1")

        assert [m.content for m in history] == ["ok"]


class TestIdempotentAppend:
    """Appends carrying a turn id are written at most once per marker."""

    async def test_duplicate_turn_append_is_skipped(self, history_store) -> None:
        message = StoredMessage(role="user", content="hello", turn_id="t1")

        assert await history_store.append("s1", message) is True
        assert await history_store.append("s1", message) is False

        assert len(await history_store.get_history("s1")) == 1

    async def test_markers_distinguish_same_role(self, history_store) -> None:
        note = StoredMessage(role="assistant", content="[context] {}", turn_id="t1")
        reply = StoredMessage(role="assistant", content="answer", turn_id="t1")

        assert await history_store.append("s1", note, marker="context") is True
        assert await history_store.append("s1", reply, marker="reply") is True

        assert len(await history_store.get_history("s1")) == 2

    async def test_other_turns_are_not_affected(self, history_store) -> None:
        await history_store.append("s1", StoredMessage(role="user", content="a", turn_id="t1"))
        await history_store.append("s1", StoredMessage(role="user", content="a", turn_id="t2"))

        assert len(await history_store.get_history("s1")) == 2

    async def test_messages_without_turn_id_always_append(self, history_store) -> None:
        message = StoredMessage(role="user", content="again")

        await history_store.append("s1", message)
        await history_store.append("s1", message)

        assert len(await history_store.get_history("s1")) == 2


class TestFailureHandling:
    """Unreachable stores soft-fail; other Redis errors raise."""

    async def test_read_soft_fails(self) -> None:
        redis = MagicMock()
        redis.lrange = AsyncMock(side_effect=RedisConnectionError("down"))
        store = SessionHistoryStore(redis)

        assert await store.get_history("s1") == []

    async def test_write_soft_fails_when_unreachable(self) -> None:
        redis = MagicMock()
        redis.sadd = AsyncMock(side_effect=RedisConnectionError("down"))
        store = SessionHistoryStore(redis)

        result = await store.append("s1", StoredMessage(role="user", content="x", turn_id="t1"))

        assert result is False

    async def test_other_redis_errors_raise(self, fake_redis) -> None:
        await fake_redis.set("chat:turns:s1", "not a set")
        store = SessionHistoryStore(fake_redis)

        with pytest.raises(SessionStoreError) as exc_info:
            await store.append("s1", StoredMessage(role="user", content="x", turn_id="t1"))

        assert exc_info.value.session_id == "s1"
        assert isinstance(exc_info.value.__cause__, ResponseError)

    async def test_failed_push_releases_turn_marker(self, fake_redis) -> None:
        await fake_redis.set("chat:history:s1", "not a list")
        store = SessionHistoryStore(fake_redis)
        message = StoredMessage(role="user", content="hello", turn_id="t1")

        with pytest.raises(SessionStoreError):
            await store.append("s1", message)

        await fake_redis.delete("chat:history:s1")

        assert await store.append("s1", message) is True
        assert [m.content for m in await store.get_history("s1")] == ["hello"]

    async def test_unreachable_push_releases_turn_marker(self) -> None:
        redis = MagicMock()
        redis.sadd = AsyncMock(return_value=1)
        redis.expire = AsyncMock()
        redis.srem = AsyncMock()
        redis.pipeline = MagicMock(side_effect=RedisConnectionError("down"))
        store = SessionHistoryStore(redis)

        result = await store.append("s1", StoredMessage(role="user", content="x", turn_id="t1"))

        assert result is False
        redis.srem.assert_awaited_once_with("chat:turns:s1", "t1:user:message")
