# clientsplus/utils/__init__.py
"""Shared helpers: clock access and encryption of stored values."""

from .clock import Clock, utc_now
from .security import FernetEncryptor, generate_fernet_key

__all__ = [
    "Clock",
    "utc_now",
    "FernetEncryptor",
    "generate_fernet_key",
]
