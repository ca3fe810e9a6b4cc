# clientsplus/storage/memory_store.py
import logging
from typing import Dict, Optional

from .storage_interfaces import AbstractKeyValueStore

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Process-local store. Used as the ephemeral (session-only) tier."""

    durable = False

    def __init__(self):
        self._entries: Dict[str, str] = {}

    async def initialize(self) -> None:
        logger.debug("InMemoryKeyValueStore initialized.")

    async def teardown(self) -> None:
        self._entries.clear()

    async def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    async def set(self, key: str, value: str) -> None:
        self._entries[key] = value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self):
        return list(self._entries)
