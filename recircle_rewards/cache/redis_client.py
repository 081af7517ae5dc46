"""
Redis client configuration and connection management.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

import redis.asyncio as redis
from redis.asyncio import Redis
import structlog


logger = structlog.get_logger(__name__)


class RedisClient:
    """
    Async Redis client wrapper with connection management.

    Command failures are logged and re-raised: callers use Redis as the
    idempotency ledger and must never mistake an outage for a missing key.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", max_connections: int = 20):
        self.url = url
        self.max_connections = max_connections
        self._client: Optional[Redis] = None
        self._pool: Optional[redis.ConnectionPool] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is not None:
            return
        try:
            self._pool = redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                socket_keepalive=True
            )
            self._client = Redis(connection_pool=self._pool)

            # Test connection
            await self._client.ping()
            logger.info("Redis connection established", url=self.url)

        except redis.RedisError as e:
            logger.error("Failed to connect to Redis", url=self.url, error=str(e))
            self._client = None
            raise

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """Get Redis client instance."""
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Check Redis connection health."""
        if self._client is None:
            return {"status": "disconnected", "error": "No connection"}
        try:
            loop = asyncio.get_running_loop()
            start_time = loop.time()
            result = await self._client.ping()
            ping_time = (loop.time() - start_time) * 1000

            info = await self._client.info()
            return {
                "status": "healthy" if result else "unhealthy",
                "ping_ms": round(ping_time, 2),
                "connected_clients": info.get("connected_clients", 0),
                "used_memory_human": info.get("used_memory_human", "0B"),
                "redis_version": info.get("redis_version", "unknown"),
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}

    # Core Redis operations
    async def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        try:
            return await self.client.get(key)
        except redis.RedisError as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            raise

    async def set(
        self,
        key: str,
        value: Union[str, bytes, int, float],
        ex: Optional[int] = None,
        nx: bool = False
    ) -> bool:
        """Set key-value with optional expiration."""
        try:
            return bool(await self.client.set(key, value, ex=ex, nx=nx))
        except redis.RedisError as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            raise

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys."""
        try:
            return await self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error("Redis DELETE failed", keys=keys, error=str(e))
            raise

    async def eval(self, script: str, keys: List[str], args: List[Any]) -> Any:
        """Run a Lua script atomically."""
        try:
            return await self.client.eval(script, len(keys), *keys, *args)
        except redis.RedisError as e:
            logger.error("Redis EVAL failed", keys=keys, error=str(e))
            raise
