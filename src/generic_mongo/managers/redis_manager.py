"""
# Redis Manager

Lazily connected async Redis client used as the bookkeeping **side store**: counters and
timestamps mirrored outside MongoDB under `{record_id}:{store_name}:{kind}` keys.

```python
from generic_mongo.managers.redis_manager import redis_manager

await redis_manager.set("64f...:orders:getHitCount", "3")
value = await redis_manager.get("64f...:orders:getHitCount")
```

`RedisKeyValueStore` adapts a `RedisManager` to the `KeyValueStore` protocol consumed by
the bookkeeping module (`get(key)` / `set(key, value)`), optionally under a key namespace.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis

from generic_mongo.config import Settings, settings as default_settings
from generic_mongo.managers.logging_manager import get_logger

logger = get_logger(prefix="[REDIS]")


class RedisManager:
    """
    Owns a single `redis.asyncio.Redis` client per process.

    Attributes:
        client (`Optional[redis.Redis]`): The connected client, `None` until first use.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[redis.Redis] = None):
        self.settings = settings or default_settings
        self.client: Optional[redis.Redis] = client
        self._lock = asyncio.Lock()

    async def get_redis(self) -> redis.Redis:
        """Return the shared client, connecting and pinging it on first use."""
        async with self._lock:
            if self.client is None:
                client = redis.from_url(self.settings.redis_url, decode_responses=True)
                try:
                    await client.ping()
                except (redis.ConnectionError, redis.TimeoutError) as e:
                    logger.error("Redis connection failed: %s", e)
                    await client.aclose()
                    raise
                self.client = client
                logger.info("Redis client connected")
            return self.client

    async def get(self, key: str) -> Optional[str]:
        client = await self.get_redis()
        value = await client.get(key)
        logger.debug("GET %s -> %s", key, value)
        return value

    async def set(self, key: str, value: str) -> None:
        client = await self.get_redis()
        await client.set(key, value)
        logger.debug("SET %s = %s", key, value)

    async def close(self) -> None:
        """Close the client; the next call reconnects."""
        async with self._lock:
            if self.client is not None:
                await self.client.aclose()
                self.client = None
                logger.info("Redis client closed")


# Global Redis manager instance
redis_manager = RedisManager()


class RedisKeyValueStore:
    """Bookkeeping side store backed by Redis."""

    def __init__(self, manager: Optional[RedisManager] = None, namespace: str = ""):
        self.manager = manager or redis_manager
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    async def get(self, key: str) -> Optional[str]:
        return await self.manager.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self.manager.set(self._key(key), value)
