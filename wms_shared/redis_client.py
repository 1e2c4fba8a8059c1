"""Redis connection management."""

import redis.asyncio as redis
import logging
from typing import Optional
from wms_shared.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Owns one pooled Redis connection for the lifetime of a service."""

    def __init__(self, url: Optional[str] = None, max_connections: int = 10):
        self.url = url or settings.redis_url
        self.max_connections = max_connections
        self._client: Optional[redis.Redis] = None
        self._pool: Optional[redis.ConnectionPool] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> redis.Redis:
        """Create the connection pool and verify the server responds."""
        if self._client is not None:
            return self._client

        pool = redis.ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)

        try:
            await client.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            await pool.disconnect()
            raise

        self._pool = pool
        self._client = client
        logger.info("Redis connection established")

        return client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected")
        return self._client

    async def close(self):
        """Close Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
