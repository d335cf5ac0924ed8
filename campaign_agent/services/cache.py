"""
Durable JSON Cache

This module provides the TTL key-value cache shared across process
instances. The campaign analyzer stores completed analyses here.

Every operation soft-fails: when Redis is unreachable or holds a corrupt
value, reads behave as a cache miss and writes are dropped with a warning.

Pattern: Repository pattern with Redis storage
Pattern: Graceful degradation (cache unavailability is never an error)
"""

import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


class JSONCache:
    """
    JSON values in Redis with a per-key TTL.

    Attributes:
        _redis: Async Redis client (decode_responses=True).

    Example:
        >>> cache = JSONCache(redis_client)
        >>> await cache.set_json("campaign:analysis:...", {"overview": {}}, 900)
        >>> await cache.get_json("campaign:analysis:...")
        {'overview': {}}
    """

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Read and decode a cached value.

        Returns:
            The decoded value, or None on miss, corrupt data or store failure.
        """
        try:
            raw = await self._redis.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        """
        Encode and store a value with an expiry.

        Failures are logged and swallowed.
        """
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache value for {key} is not serializable: {e}")
            return

        try:
            await self._redis.set(key, payload, ex=max(int(ttl_seconds), 1))
        except (RedisError, OSError) as e:
            logger.warning(f"Cache set failed for {key}: {e}")
