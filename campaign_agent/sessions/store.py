"""
Session History Store

This module provides the Redis-backed conversational transcript of each
session: an ordered list of StoredMessage entries capped at memory_limit
by trimming the oldest entries after every append.

Appends that carry a turn_id are idempotent. A marker
"{turn_id}:{role}:{marker}" is added to a per-session Redis set before the
push, and an append whose marker is already present is skipped. A chat
turn retried with the same turn_id therefore never duplicates its
messages in the transcript. When the push itself fails the marker is
removed again, so the retry writes the message instead of skipping it.

Pattern: Repository pattern
Pattern: Dependency injection for Redis client
"""

import logging
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from campaign_agent.core.exceptions import SessionError
from campaign_agent.models.domain import StoredMessage


logger = logging.getLogger(__name__)

MAX_HISTORY_READ = 1000


# =============================================================================
# Session Store Error
# =============================================================================


class SessionStoreError(SessionError):
    """
    Raised when a transcript write fails for a reason other than the store
    being unreachable (wrong key type, script errors, and similar).
    """

    pass


# =============================================================================
# SessionHistoryStore
# =============================================================================


class SessionHistoryStore:
    """
    Bounded, append-only chat history per session.

    Reads soft-fail to an empty history. Writes soft-fail when Redis is
    unreachable, so a chat turn can still be answered without memory.

    Attributes:
        _redis: The Redis client instance (decode_responses=True).
        _key_prefix: Prefix of the history list keys.
        _turns_key_prefix: Prefix of the idempotency marker sets.
        _memory_limit: Maximum entries kept per session.
        _ttl_seconds: Expiry refreshed on every append.

    Example:
        >>> store = SessionHistoryStore(redis_client, memory_limit=50)
        >>> await store.append("session_1", StoredMessage(role="user", content="hi"))
        >>> await store.get_history("session_1")
    """

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = "chat:history:",
        turns_key_prefix: str = "chat:turns:",
        memory_limit: int = 50,
        ttl_seconds: Optional[int] = 86400,
    ) -> None:
        self._redis: Redis = redis_client
        self._key_prefix = key_prefix
        self._turns_key_prefix = turns_key_prefix
        self._memory_limit = memory_limit
        self._ttl_seconds = ttl_seconds

    @property
    def memory_limit(self) -> int:
        return self._memory_limit

    def _make_key(self, session_id: str) -> str:
        return f"{self._key_prefix}{session_id}"

    def _make_turns_key(self, session_id: str) -> str:
        return f"{self._turns_key_prefix}{session_id}"

    # =========================================================================
    # Writes
    # =========================================================================

    async def append(
        self,
        session_id: str,
        message: StoredMessage,
        marker: str = "message",
    ) -> bool:
        """
        Append a message and trim the list to the memory limit.

        Args:
            session_id: The session's identifier.
            message: The message to store.
            marker: Distinguishes several messages of the same role within
                one turn (e.g. "context" and "reply"). Only used when the
                message carries a turn_id.

        Returns:
            True if the message was written, False if it was a duplicate
            of an earlier append or the store was unreachable.

        Raises:
            SessionStoreError: On Redis errors other than connectivity.
        """
        key = self._make_key(session_id)
        turns_key = self._make_turns_key(session_id)
        turn_marker: Optional[str] = None

        try:
            if message.turn_id:
                member = f"{message.turn_id}:{message.role}:{marker}"
                added = await self._redis.sadd(turns_key, member)
                if not added:
                    logger.debug(
                        f"Skipping duplicate {message.role}/{marker} append "
                        f"for turn {message.turn_id}"
                    )
                    return False
                turn_marker = member
                if self._ttl_seconds:
                    await self._redis.expire(turns_key, self._ttl_seconds)

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.rpush(key, message.model_dump_json())
                pipe.ltrim(key, -self._memory_limit, -1)
                if self._ttl_seconds:
                    pipe.expire(key, self._ttl_seconds)
                await pipe.execute()
            return True

        except (RedisConnectionError, RedisTimeoutError) as e:
            await self._release_marker(turns_key, turn_marker)
            logger.warning(f"History store unreachable, dropping append for {session_id}: {e}")
            return False
        except RedisError as e:
            await self._release_marker(turns_key, turn_marker)
            raise SessionStoreError(
                f"Failed to append message to session {session_id}: {e}",
                session_id=session_id,
            ) from e

    async def _release_marker(self, turns_key: str, turn_marker: Optional[str]) -> None:
        """Remove a marker whose push did not happen so a retry can write it."""
        if turn_marker is None:
            return
        try:
            await self._redis.srem(turns_key, turn_marker)
        except RedisError as e:
            logger.warning(f"Could not release turn marker {turn_marker} in {turns_key}: {e}")

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_history(
        self,
        session_id: str,
        limit: Optional[int] = None,
    ) -> list[StoredMessage]:
        """
        Return the most recent messages, oldest first.

        Args:
            session_id: The session's identifier.
            limit: Number of entries to return (default: memory limit).

        Returns:
            Ordered messages; empty when the store is unreachable.
            Entries that fail to parse are skipped.
        """
        count = min(limit if limit is not None else self._memory_limit, MAX_HISTORY_READ)
        if count <= 0:
            return []

        try:
            raw = await self._redis.lrange(self._make_key(session_id), -count, -1)
        except (RedisError, OSError) as e:
            logger.warning(f"History read failed for {session_id}: {e}")
            return []

        messages: list[StoredMessage] = []
        for entry in raw:
            try:
                messages.append(StoredMessage.model_validate_json(entry))
            except ValidationError:
                logger.warning(f"Skipping malformed history entry in {session_id}")
        return messages
