# clientsplus/utils/security.py
import logging
from typing import Optional
from base64 import urlsafe_b64decode

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


def generate_fernet_key() -> str:
    """Generates a new Fernet key and returns it as a string."""
    return Fernet.generate_key().decode('utf-8')


class FernetEncryptor:
    """Encrypts and decrypts stored session material with Fernet."""

    def __init__(self, encryption_key: str):
        """
        Args:
            encryption_key: Base64-encoded Fernet key string

        Raises:
            ValueError: If the key does not decode to 32 bytes
        """
        if not encryption_key:
            raise ValueError("An encryption key is required.")
        key_bytes = encryption_key.encode('utf-8')
        try:
            decoded_key_bytes = urlsafe_b64decode(key_bytes)
        except ValueError as e:
            raise ValueError(f"Encryption key is not valid base64: {e}") from e
        if len(decoded_key_bytes) != 32:
            raise ValueError(
                f"Invalid encryption key length after base64 decoding. "
                f"Expected 32 bytes, got {len(decoded_key_bytes)}."
            )
        self._fernet = Fernet(key_bytes)
        logger.info("FernetEncryptor initialized with a valid key.")

    def encrypt(self, data: str) -> str:
        return self._fernet.encrypt(data.encode('utf-8')).decode('utf-8')

    def decrypt(self, encrypted_data: str) -> Optional[str]:
        """
        Decrypt a Fernet-encrypted string.

        Returns:
            The plain text, or None when the data was written with another key or is corrupted
        """
        try:
            return self._fernet.decrypt(encrypted_data.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            logger.error(
                "Decryption failed: Invalid token. "
                "This may be due to an incorrect key or corrupted data."
            )
            return None
