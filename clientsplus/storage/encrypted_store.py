# clientsplus/storage/encrypted_store.py
import logging
from typing import Optional

from ..utils.security import FernetEncryptor
from .storage_interfaces import AbstractKeyValueStore

logger = logging.getLogger(__name__)


class EncryptedKeyValueStore(AbstractKeyValueStore):
    """Wraps another store and keeps its values Fernet-encrypted at rest."""

    def __init__(self, inner: AbstractKeyValueStore, encryptor: FernetEncryptor):
        self.inner = inner
        self.encryptor = encryptor
        self.durable = inner.durable

    async def initialize(self) -> None:
        await self.inner.initialize()

    async def teardown(self) -> None:
        await self.inner.teardown()

    async def get(self, key: str) -> Optional[str]:
        encrypted = await self.inner.get(key)
        if encrypted is None:
            return None
        value = self.encryptor.decrypt(encrypted)
        if value is None:
            logger.warning(f"EncryptedKeyValueStore: entry '{key}' could not be decrypted; treating as absent.")
        return value

    async def set(self, key: str, value: str) -> None:
        await self.inner.set(key, self.encryptor.encrypt(value))

    async def delete(self, key: str) -> None:
        await self.inner.delete(key)
