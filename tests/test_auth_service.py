"""Unit tests for dashboard sign-in and the HTTP identity provider."""

import json

import httpx
import pytest

from clientsplus.errors import (
    AccountDisabledError,
    ClientsPlusError,
    CredentialInvalidError,
    ErrorKind,
    NetworkError,
    RateLimitedError
)
from clientsplus.messages import get_message
from clientsplus.session_tokens import CREDENTIAL_KEY, DashboardAuthService, HttpIdentityProvider

API_URL = "https://api.salon.example/api"


@pytest.fixture
def auth_service(identity_provider, token_manager):
    return DashboardAuthService(identity_provider, token_manager, locale="en")


class TestDashboardAuthService:
    @pytest.mark.asyncio
    async def test_login_with_remember_me_uses_durable_tier(self, auth_service, durable_store, ephemeral_store):
        result = await auth_service.login("owner@salon.example", "secret", remember_me=True)

        assert result.success is True
        assert result.user.company_id == "company-1"
        assert await durable_store.get(CREDENTIAL_KEY) is not None
        assert await ephemeral_store.get(CREDENTIAL_KEY) is None
        assert await auth_service.is_authenticated() is True

    @pytest.mark.asyncio
    async def test_login_without_remember_me_uses_ephemeral_tier(self, auth_service, durable_store, ephemeral_store):
        await auth_service.login("owner@salon.example", "secret")

        assert await ephemeral_store.get(CREDENTIAL_KEY) is not None
        assert await durable_store.get(CREDENTIAL_KEY) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, message_id",
        [
            (CredentialInvalidError("auth/wrong-password"), "credential_invalid"),
            (AccountDisabledError("auth/user-disabled"), "account_disabled"),
            (RateLimitedError("auth/too-many-requests"), "rate_limited"),
            (NetworkError("offline"), "network"),
        ],
    )
    async def test_login_failures_carry_specific_messages(
        self, auth_service, identity_provider, token_manager, error, message_id
    ):
        identity_provider.login_error = error

        result = await auth_service.login("owner@salon.example", "wrong")

        assert result.success is False
        assert result.kind == error.kind
        assert result.message == get_message(message_id, "en")
        assert await token_manager.get_credential() is None

    @pytest.mark.asyncio
    async def test_logout_revokes_and_clears(self, auth_service, identity_provider, token_manager):
        await auth_service.login("owner@salon.example", "secret")

        await auth_service.logout()

        assert identity_provider.logout_calls == ["r1"]
        assert await token_manager.get_credential() is None

    @pytest.mark.asyncio
    async def test_logout_clears_even_when_revocation_fails(self, auth_service, identity_provider, token_manager):
        await auth_service.login("owner@salon.example", "secret")

        async def failing_logout(refresh_token):
            raise NetworkError("offline")

        identity_provider.logout = failing_logout
        await auth_service.logout()

        assert await token_manager.get_credential() is None

    @pytest.mark.asyncio
    async def test_current_user_requires_session(self, auth_service):
        with pytest.raises(CredentialInvalidError):
            await auth_service.current_user()

    @pytest.mark.asyncio
    async def test_current_user(self, auth_service):
        await auth_service.login("owner@salon.example", "secret")

        user = await auth_service.current_user()

        assert user.id == "user-1"


class TestHttpIdentityProvider:
    @pytest.mark.asyncio
    async def test_login_parses_wrapped_payload(self):
        def handler(request):
            assert request.url.path == "/api/auth/login"
            assert json.loads(request.content) == {"email": "owner@salon.example", "password": "secret"}
            return httpx.Response(200, json={"success": True, "data": {
                "accessToken": "a1",
                "refreshToken": "r1",
                "expiresIn": 900,
                "user": {"uid": "user-1", "email": "owner@salon.example", "companyId": "company-1"},
            }})

        provider = HttpIdentityProvider(base_url=API_URL, transport=httpx.MockTransport(handler))
        grant = await provider.login("owner@salon.example", "secret")

        assert grant.access_token == "a1"
        assert grant.expires_in_seconds == 900
        assert grant.user.id == "user-1"
        assert grant.user.company_id == "company-1"

    @pytest.mark.asyncio
    async def test_refresh_sends_refresh_token(self):
        def handler(request):
            assert json.loads(request.content) == {"refreshToken": "r1"}
            return httpx.Response(200, json={"accessToken": "a2", "refreshToken": "r2", "expiresIn": 3600})

        provider = HttpIdentityProvider(base_url=API_URL, transport=httpx.MockTransport(handler))
        grant = await provider.refresh("r1")

        assert (grant.access_token, grant.refresh_token) == ("a2", "r2")

    @pytest.mark.asyncio
    async def test_me_sends_bearer_token(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer a1"
            return httpx.Response(200, json={"user": {"id": "user-1", "role": "owner"}})

        provider = HttpIdentityProvider(base_url=API_URL, transport=httpx.MockTransport(handler))
        user = await provider.me("a1")

        assert user.role == "owner"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, code, kind",
        [
            (400, "auth/wrong-password", ErrorKind.CREDENTIAL_INVALID),
            (400, "auth/user-not-found", ErrorKind.CREDENTIAL_INVALID),
            (403, "auth/user-disabled", ErrorKind.ACCOUNT_DISABLED),
            (400, "auth/too-many-requests", ErrorKind.RATE_LIMITED),
        ],
    )
    async def test_login_error_codes(self, status, code, kind):
        def handler(request):
            return httpx.Response(status, json={"error": code, "message": "login failed"})

        provider = HttpIdentityProvider(base_url=API_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(ClientsPlusError) as exc_info:
            await provider.login("owner@salon.example", "secret")

        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status
