# clientsplus/http_client/__init__.py
# Outbound calls to the dashboard API with automatic token renewal
from .authenticated_client import AuthenticatedClient

__all__ = ["AuthenticatedClient"]
