"""
Redis cache store for the catalog service.

Every call raises ``CacheUnavailableError`` on transport, timeout or
serialization failure so callers can degrade to the record store. A miss
returns ``None`` and is never an error.
"""

import asyncio
import json
from typing import Any, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CacheUnavailableError
from shared.logging import get_logger


_TRANSPORT_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisCache:
    """Key/value cache with per-key TTL, backed by Redis."""

    def __init__(self, redis_url: str, socket_timeout: float = 5.0, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.logger = get_logger("catalog.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Create the client and verify the connection."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                health_check_interval=30
            )

        await self.ping()
        self.logger.info("Redis cache started", redis_url=self.redis_url)

    async def stop(self):
        """Close the client."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheUnavailableError("Redis client not started")
        return self.redis

    def _unavailable(self, operation: str, target: str, exc: Exception, deleted: int = 0) -> CacheUnavailableError:
        self.logger.warning("Redis operation failed", operation=operation, key=target, error=str(exc))
        return CacheUnavailableError(
            f"Redis {operation} failed: {exc}",
            details={"operation": operation, "key": target},
            deleted=deleted
        )

    async def get(self, key: str) -> Optional[str]:
        """Raw value for ``key`` or None on a miss."""
        try:
            return await self._client().get(key)
        except UnicodeDecodeError as e:
            raise self._unavailable("decode", key, e) from e
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("get", key, e) from e

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client().setex(key, ttl_seconds, value)
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("set", key, e) from e
        self.logger.debug("Key set", key=key, ttl=ttl_seconds)

    async def get_json(self, key: str) -> Optional[Any]:
        value = await self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            raise self._unavailable("decode", key, e) from e

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise self._unavailable("encode", key, e) from e
        await self.set_with_ttl(key, encoded, ttl_seconds)

    async def delete(self, key: str) -> int:
        try:
            deleted = await self._client().delete(key)
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("delete", key, e) from e
        self.logger.debug("Key deleted", key=key, deleted=deleted)
        return deleted

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern`` one at a time.

        On failure the raised error's ``deleted`` holds the keys removed so far.
        """
        keys = await self.keys(pattern)

        deleted = 0
        for key in keys:
            try:
                deleted += await self._client().delete(key)
            except _TRANSPORT_ERRORS as e:
                raise self._unavailable("delete_by_pattern", pattern, e, deleted=deleted) from e

        if deleted:
            self.logger.info("Deleted keys by pattern", pattern=pattern, count=deleted)
        return deleted

    async def keys(self, pattern: str = "*") -> List[str]:
        try:
            return await self._client().keys(pattern)
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("keys", pattern, e) from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client().exists(key))
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("exists", key, e) from e

    async def ttl(self, key: str) -> int:
        """Remaining seconds; -1 when the key has no expiry, -2 when absent."""
        try:
            return await self._client().ttl(key)
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("ttl", key, e) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client().ping())
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("ping", "-", e) from e

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return await self.ping()
        except CacheUnavailableError:
            return False
