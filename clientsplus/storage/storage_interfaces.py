# clientsplus/storage/storage_interfaces.py
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)


class AbstractKeyValueStore(ABC):
    """
    Abstract base class for the string key-value tiers used for token and
    portal-session persistence.

    Values are opaque strings; structured entries go through the JSON helpers.
    Implementations decide whether entries survive a process restart.
    """

    durable: bool = False

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value for ``key`` or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the underlying storage."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Release resources held by the store."""
        pass

    async def get_json(self, key: str) -> Optional[Any]:
        """Load a JSON entry. Undecodable entries are reported and treated as absent."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error(f"{type(self).__name__}: could not decode JSON entry '{key}': {e}")
            return None

    async def set_json(self, key: str, value: Any) -> None:
        await self.set(key, json.dumps(value))
