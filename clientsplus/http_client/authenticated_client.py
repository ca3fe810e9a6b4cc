# clientsplus/http_client/authenticated_client.py
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import RefreshFailedError, error_from_response, error_from_transport
from ..session_tokens.coordinator import TokenCoordinator
from ..session_tokens.token_manager import SessionTokenManager
from ..settings import settings

logger = logging.getLogger(__name__)


class AuthenticatedClient:
    """
    ``httpx.AsyncClient`` wrapper for calls to the dashboard API.

    Every call carries the stored access token. A 401 triggers one renewal
    through the shared ``TokenCoordinator`` and a single replay; any other
    failure is raised as a ``ClientsPlusError`` subclass.
    """

    def __init__(
        self,
        token_manager: SessionTokenManager,
        coordinator: TokenCoordinator,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token_manager = token_manager
        self.coordinator = coordinator
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.api_base_url).rstrip("/"),
            timeout=timeout_seconds or settings.request_timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        access_token: Optional[str],
        **kwargs: Any
    ) -> httpx.Response:
        request_headers = dict(headers)
        if access_token:
            request_headers["Authorization"] = f"Bearer {access_token}"
        try:
            return await self._client.request(method, url, headers=request_headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"AuthenticatedClient: transport failure on {method} {url}: {e}")
            raise error_from_transport(e) from e

    def _checked(self, method: str, url: str, response: httpx.Response) -> httpx.Response:
        if response.is_error:
            error = error_from_response(response)
            logger.warning(
                f"AuthenticatedClient: {method} {url} failed with {response.status_code} ({error.kind.value})."
            )
            raise error
        return response

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, renewing the access token once on 401.

        Raises:
            CredentialInvalidError: 401 that renewal could not fix, chained from the renewal failure,
                or a 401 when no session is stored (no renewal is attempted)
            ClientsPlusError: any other failure, classified by status or transport error
        """
        headers = kwargs.pop("headers", None) or {}
        access_token = await self.token_manager.get_access_token()
        response = await self._send(method, url, headers, access_token, **kwargs)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return self._checked(method, url, response)

        original_error = error_from_response(response)
        current_token = await self.token_manager.get_access_token()
        if current_token is None:
            # No session left to renew: never signed in, or cleared by a failed refresh or logout.
            logger.info(f"AuthenticatedClient: {method} {url} got 401 with no active session.")
            raise original_error
        if current_token != access_token:
            # Renewed while this call was in flight.
            new_token = current_token
        else:
            logger.info(f"AuthenticatedClient: {method} {url} got 401, renewing access token.")
            try:
                new_token = await self.coordinator.refresh()
            except RefreshFailedError as e:
                raise original_error from e

        retry_response = await self._send(method, url, headers, new_token, **kwargs)
        return self._checked(method, url, retry_response)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)
