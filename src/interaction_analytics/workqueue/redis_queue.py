"""Evaluation work queue backed by Redis keys with a TTL.

Each pending query is a single key ``<prefix><query_id>`` holding the JSON
snapshot of the query event. Keys expire on their own; an item that is never
processed is dropped silently and the query stays unclassified.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "eval:"
DEFAULT_TTL_SECONDS = 3600


class EvaluationQueue:
    """Key/value work queue with expiry.

    Redis errors propagate to the caller. The gateway logs enqueue failures
    as side-effect errors, and the classifier leaves items in place when a
    read or delete fails.
    """

    def __init__(
        self,
        redis: "Redis",
        prefix: str = DEFAULT_PREFIX,
        default_ttl: int = DEFAULT_TTL_SECONDS,
    ):
        """Initialize evaluation queue.

        Args:
            redis: Redis client instance
            prefix: Key prefix isolating queue items
            default_ttl: Expiry applied when ``put`` gets no ttl
        """
        self.redis = redis
        self.prefix = prefix
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        """Generate the Redis key for a queue item."""
        return f"{self.prefix}{key}"

    def _strip(self, raw_key: bytes | str) -> str:
        key = raw_key.decode() if isinstance(raw_key, bytes) else raw_key
        return key[len(self.prefix):] if key.startswith(self.prefix) else key

    async def put(self, key: str, payload: dict[str, Any], ttl: int | None = None) -> None:
        """Store an item, replacing any existing item with the same key."""
        value = json.dumps(payload, separators=(",", ":"))
        await self.redis.setex(self._key(key), ttl or self.default_ttl, value)

    async def list(self, limit: int) -> list[str]:
        """List up to ``limit`` pending item keys (without prefix)."""
        if limit <= 0:
            return []

        keys: list[str] = []
        seen: set[str] = set()
        # SCAN may yield a key more than once
        async for raw_key in self.redis.scan_iter(match=f"{self.prefix}*", count=limit):
            key = self._strip(raw_key)
            if key in seen:
                continue
            seen.add(key)
            keys.append(key)
            if len(keys) >= limit:
                break
        return keys

    async def get(self, key: str) -> dict[str, Any] | None:
        """Get an item's payload, or None if it expired or was removed.

        A payload that is not valid JSON is treated as missing.
        """
        value = await self.redis.get(self._key(key))
        if value is None:
            return None
        try:
            payload = json.loads(value)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Dropping unreadable queue item {key}: {e}")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"Dropping queue item {key}: payload is not an object")
            return None
        return payload

    async def delete(self, key: str) -> bool:
        """Remove an item. Returns False if it was already gone."""
        deleted = await self.redis.delete(self._key(key))
        return bool(deleted)

    async def size(self) -> int:
        """Count pending items (full scan; for diagnostics only)."""
        count = 0
        async for _ in self.redis.scan_iter(match=f"{self.prefix}*"):
            count += 1
        return count
