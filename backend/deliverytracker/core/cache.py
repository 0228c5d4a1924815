"""Local key-value cache backed by Redis with an in-memory fallback.

Values are stored as JSON strings. The sync core only needs ``get``, ``set``
and ``remove``; keys are namespaced with ``CACHE_KEY_PREFIX``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import redis.asyncio as redis
from loguru import logger

from deliverytracker.core.config import settings

ACTIVE_DELIVERIES_KEY = "active-deliveries"
CUSTOMERS_KEY = "customers"
SYNC_QUEUE_KEY = "sync-queue"


class LocalCache:
    """JSON key-value store: Redis when reachable, process memory otherwise."""

    def __init__(
        self,
        *,
        prefix: str | None = None,
        use_redis: bool | None = None,
        op_timeout: float = 0.1,
    ) -> None:
        self.prefix = prefix if prefix is not None else settings.CACHE_KEY_PREFIX
        self.use_redis = settings.REDIS_ENABLED if use_redis is None else use_redis
        self.op_timeout = op_timeout
        self._client: Optional[redis.Redis] = None
        self._redis_checked = False
        # Memory copy is always written so a Redis outage never loses the backup.
        self._memory: dict[str, str] = {}

    def _key(self, key: str) -> str:
        return f"{self.prefix}-{key}" if self.prefix else key

    async def _get_client(self) -> Optional[redis.Redis]:
        if not self.use_redis:
            return None
        if self._redis_checked:
            return self._client
        self._redis_checked = True
        client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )
        try:
            await asyncio.wait_for(client.ping(), timeout=0.5)
        except Exception as exc:
            logger.bind(error=str(exc)).warning("cache_redis_unavailable")
            await client.aclose()
            return None
        self._client = client
        logger.info("cache_redis_connected")
        return self._client

    async def get(self, key: str) -> Any:
        """Return the decoded value for ``key`` or ``None`` when absent/corrupt."""

        full_key = self._key(key)
        raw: Optional[str] = None
        client = await self._get_client()
        if client is not None:
            try:
                raw = await asyncio.wait_for(client.get(full_key), timeout=self.op_timeout)
            except Exception as exc:
                logger.bind(key=full_key, error=str(exc)).warning("cache_redis_get_failed")
        if raw is None:
            raw = self._memory.get(full_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.bind(key=full_key).warning("cache_value_corrupt")
            return None

    async def set(self, key: str, value: Any) -> None:
        full_key = self._key(key)
        raw = json.dumps(value, default=str)
        self._memory[full_key] = raw
        client = await self._get_client()
        if client is not None:
            try:
                await asyncio.wait_for(client.set(full_key, raw), timeout=self.op_timeout)
            except Exception as exc:
                logger.bind(key=full_key, error=str(exc)).warning("cache_redis_set_failed")

    async def remove(self, key: str) -> None:
        full_key = self._key(key)
        self._memory.pop(full_key, None)
        client = await self._get_client()
        if client is not None:
            try:
                await asyncio.wait_for(client.delete(full_key), timeout=self.op_timeout)
            except Exception as exc:
                logger.bind(key=full_key, error=str(exc)).warning("cache_redis_delete_failed")

    async def close(self) -> None:
        """Close the Redis connection, if one was opened."""

        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._redis_checked = False
