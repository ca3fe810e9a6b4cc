# clientsplus/storage/__init__.py
"""Storage module initialization.

Provides the two persistence tiers: a durable store (SQLite or Redis,
optionally encrypted) and an in-memory ephemeral store.
"""

import logging
from typing import Optional

from ..settings import settings
from ..utils.security import FernetEncryptor
from .storage_interfaces import AbstractKeyValueStore
from .memory_store import InMemoryKeyValueStore
from .sqlite_store import SQLiteKeyValueStore, get_sqlite_kv_store
from .redis_store import RedisKeyValueStore
from .encrypted_store import EncryptedKeyValueStore

logger = logging.getLogger(__name__)

_durable_store_instance: Optional[AbstractKeyValueStore] = None


async def get_durable_store() -> AbstractKeyValueStore:
    """
    Factory returning the durable tier configured by ``settings.storage_backend``,
    wrapped in encryption when ``settings.encryption_key`` is set. Singleton.
    """
    global _durable_store_instance
    if _durable_store_instance is None:
        backend = settings.storage_backend
        if backend == "sqlite":
            store: AbstractKeyValueStore = await get_sqlite_kv_store()
        elif backend == "redis":
            store = RedisKeyValueStore()
            await store.initialize()
        elif backend == "memory":
            logger.warning("Using InMemoryKeyValueStore as the durable tier; entries will not survive restarts.")
            store = InMemoryKeyValueStore()
            store.durable = True
        else:
            raise ValueError(f"Unsupported storage_backend: {backend}")

        if settings.encryption_key:
            store = EncryptedKeyValueStore(store, FernetEncryptor(settings.encryption_key))
        logger.info(f"Durable store ready: {type(store).__name__} (backend '{backend}').")
        _durable_store_instance = store
    return _durable_store_instance


__all__ = [
    "AbstractKeyValueStore",
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "get_sqlite_kv_store",
    "RedisKeyValueStore",
    "EncryptedKeyValueStore",
    "get_durable_store",
]
