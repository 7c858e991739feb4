"""
Redis client with connection pooling for pricing cache and entity locks.

Telecore uses Redis for two things: caching resolved catalog plans and
holding distributed per-entity locks when several worker processes share
one database. Both are optional; the database stays authoritative.
"""

import json
from typing import Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.lock import Lock
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from telecore.core.config import get_settings
from telecore.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Async Redis client with connection pooling and retry logic.

    Wraps the small set of Redis operations telecore relies on: JSON
    get/set for cached plans, key deletion for invalidation, and named
    locks for per-entity serialization.
    """

    KEY_NAMESPACE = "telecore"

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
    ):
        settings = get_settings()
        self._url = url or settings.redis_url
        self._max_connections = max_connections or settings.redis_max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._is_connected = False

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Remove credentials from a Redis URL before logging it."""
        if "@" in url:
            protocol, rest = url.split("://", 1)
            _, host_part = rest.split("@", 1)
            return f"{protocol}://***@{host_part}"
        return url

    def make_key(self, *parts: Any) -> str:
        """Build a namespaced key, skipping ``None`` parts."""
        key_parts = [str(part) for part in parts if part is not None]
        return ":".join([self.KEY_NAMESPACE, *key_parts])

    async def connect(self) -> None:
        """
        Establish the connection pool and verify it with PING.

        Raises:
            ConnectionError: If Redis is unreachable
        """
        if self._is_connected:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                retry_on_timeout=True,
                retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True

            logger.info(
                "Redis connection established",
                url=self._sanitize_url(self._url),
                pool_size=self._max_connections,
            )

        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect to Redis",
                error=str(e),
                url=self._sanitize_url(self._url),
            )
            await self.disconnect()
            raise ConnectionError(f"Redis connection failed: {e}") from e

    async def disconnect(self) -> None:
        """Close the client and release pooled connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
        if self._is_connected:
            logger.info("Redis connection closed")
        self._is_connected = False

    async def health_check(self) -> bool:
        """Return True when Redis answers PING."""
        if not self._is_connected or self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.error("Redis health check failed", error=str(e))
            return False

    def _require_client(self) -> Redis:
        if not self._is_connected or self._client is None:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        """
        Get a JSON document by key.

        Returns:
            Decoded document or None when the key is missing
        """
        value = await self._require_client().get(key)
        if value is None:
            return None
        return json.loads(value)

    async def set_json(
        self, key: str, value: dict[str, Any], ex: Optional[int] = None
    ) -> bool:
        """Store a JSON document with optional expiry in seconds."""
        result = await self._require_client().set(key, json.dumps(value), ex=ex)
        logger.debug("Redis SET operation", key=key, ex=ex)
        return bool(result)

    def lock(self, name: str, timeout: float, blocking_timeout: float) -> Lock:
        """
        Create a distributed lock bound to this client.

        Args:
            name: Lock key
            timeout: Seconds after which Redis expires a held lock
            blocking_timeout: Seconds to wait for acquisition

        Returns:
            redis.asyncio Lock usable as an async context manager
        """
        return self._require_client().lock(
            name,
            timeout=timeout,
            blocking_timeout=blocking_timeout,
        )


_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """
    Get or create the global connected Redis client.

    Raises:
        ConnectionError: If Redis connection fails
    """
    global _redis_client

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client

    return _redis_client


async def close_redis_client() -> None:
    """Close the global Redis client if one was opened."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
