# clientsplus/storage/redis_store.py
import logging
from typing import Optional

import redis.asyncio as aioredis

from ..settings import settings
from .storage_interfaces import AbstractKeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Redis implementation of the durable tier."""

    durable = True
    KEY_PREFIX: str = "clientsplus:kv"

    def __init__(self, key_prefix: Optional[str] = None, client: Optional[aioredis.Redis] = None):
        if key_prefix is not None:
            self.KEY_PREFIX = key_prefix
        self._redis_client: Optional[aioredis.Redis] = client

    async def initialize(self) -> None:
        """Establish the Redis connection using global settings."""
        if self._redis_client:
            return

        connection_params = {
            "host": settings.redis_host,
            "port": settings.redis_port,
            "db": settings.redis_db,
            "ssl": settings.redis_ssl,
            "decode_responses": False,
        }
        if settings.redis_password:
            connection_params["password"] = settings.redis_password

        logger.info(
            f"Connecting to Redis at {connection_params['host']}:"
            f"{connection_params['port']}, DB: {connection_params['db']}"
        )
        try:
            self._redis_client = aioredis.Redis(**connection_params)
            await self._redis_client.ping()
            logger.info("RedisKeyValueStore: Connected.")
        except Exception as e:
            logger.error(f"RedisKeyValueStore: Connect failed: {e}", exc_info=True)
            self._redis_client = None
            raise

    async def teardown(self) -> None:
        if self._redis_client:
            await self._redis_client.aclose()
            self._redis_client = None
            logger.info("RedisKeyValueStore: Closed.")

    async def _get_client(self) -> aioredis.Redis:
        if not self._redis_client:
            await self.initialize()
            if not self._redis_client:
                raise RuntimeError("RedisKeyValueStore not initialized or connection failed.")
        return self._redis_client

    def _get_key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}:{key}"

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        data_bytes = await client.get(self._get_key(key))
        if data_bytes is None:
            return None
        return data_bytes.decode("utf-8")

    async def set(self, key: str, value: str) -> None:
        client = await self._get_client()
        await client.set(self._get_key(key), value.encode("utf-8"))

    async def delete(self, key: str) -> None:
        client = await self._get_client()
        await client.delete(self._get_key(key))
