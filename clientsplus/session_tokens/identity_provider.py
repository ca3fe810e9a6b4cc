# clientsplus/session_tokens/identity_provider.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..errors import error_from_response, error_from_transport
from ..settings import settings
from .models import AuthenticatedUser, LoginGrant, TokenGrant

logger = logging.getLogger(__name__)


class AbstractIdentityProvider(ABC):
    """
    Contract consumed from the authentication/identity backend.

    All operations raise a ``ClientsPlusError`` subclass on failure
    (invalid credential, disabled account, rate limiting, network).
    """

    @abstractmethod
    async def login(self, email: str, password: str) -> LoginGrant:
        """Exchange email and password for a token pair and the user profile."""
        pass

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new token pair."""
        pass

    @abstractmethod
    async def logout(self, refresh_token: str) -> None:
        """Revoke the refresh token server-side."""
        pass

    @abstractmethod
    async def me(self, access_token: str) -> AuthenticatedUser:
        """Return the profile of the user owning ``access_token``."""
        pass


class HttpIdentityProvider(AbstractIdentityProvider):
    """Identity provider backed by the dashboard REST API (``/auth/*`` endpoints)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.request_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # Refresh calls must not pass through the authenticated client's interceptor.
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    async def _call(
        self,
        method: str,
        path: str,
        json_payload: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        logger.debug(f"IdentityProvider: {method} {self.base_url}{path}")
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json_payload, headers=headers)
        except httpx.TransportError as e:
            logger.warning(f"IdentityProvider: transport failure on {method} {path}: {e}")
            raise error_from_transport(e) from e

        if response.is_error:
            error = error_from_response(response)
            logger.warning(
                f"IdentityProvider: {method} {path} failed with {response.status_code} ({error.kind.value})."
            )
            raise error

        if not response.content:
            return {}
        body = response.json()
        # The API wraps payloads as {"success": ..., "data": {...}}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body

    async def login(self, email: str, password: str) -> LoginGrant:
        data = await self._call("POST", "/auth/login", {"email": email, "password": password})
        return LoginGrant.model_validate(data)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        data = await self._call("POST", "/auth/refresh", {"refreshToken": refresh_token})
        return TokenGrant.model_validate(data)

    async def logout(self, refresh_token: str) -> None:
        await self._call("POST", "/auth/logout", {"refreshToken": refresh_token})

    async def me(self, access_token: str) -> AuthenticatedUser:
        data = await self._call("GET", "/auth/me", access_token=access_token)
        # /auth/me may answer {"user": {...}} or the bare profile
        if isinstance(data.get("user"), dict):
            data = data["user"]
        return AuthenticatedUser.model_validate(data)
