"""Unit tests for AuthenticatedClient refresh-and-replay behavior."""

import asyncio

import httpx
import pytest

from clientsplus.errors import (
    AuthorizationDeniedError,
    CredentialInvalidError,
    NetworkError,
    NetworkTimeoutError,
    RateLimitedError,
    RefreshFailedError,
    RequestRejectedError,
    ServerFaultError
)
from clientsplus.http_client import AuthenticatedClient

BASE_URL = "https://api.salon.example/api"


def _client(token_manager, coordinator, handler):
    return AuthenticatedClient(
        token_manager, coordinator, base_url=BASE_URL, transport=httpx.MockTransport(handler)
    )


def _accepts_only(token):
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        if request.headers.get("Authorization") == f"Bearer {token}":
            return httpx.Response(200, json={"success": True, "data": {"path": request.url.path}})
        return httpx.Response(401, json={"error": "invalid-token", "message": "Token expired"})

    return handler, seen


class TestAuthorizationHeader:
    @pytest.mark.asyncio
    async def test_attaches_current_access_token(self, token_manager, coordinator):
        await token_manager.store("a1", "r1", 3600, persistent=False)
        handler, seen = _accepts_only("a1")

        async with _client(token_manager, coordinator, handler) as client:
            response = await client.get("/appointments")

        assert response.status_code == 200
        assert seen == ["Bearer a1"]

    @pytest.mark.asyncio
    async def test_no_header_without_token(self, token_manager, coordinator):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={})

        async with _client(token_manager, coordinator, handler) as client:
            await client.get("/public/services")

        assert seen == [None]


class TestRefreshOnUnauthorized:
    @pytest.mark.asyncio
    async def test_replays_once_with_new_token(self, token_manager, coordinator, identity_provider):
        await token_manager.store("a1", "r1", 3600, persistent=False)
        handler, seen = _accepts_only("a2")

        async with _client(token_manager, coordinator, handler) as client:
            response = await client.post("/clients", json={"name": "Mona"})

        assert response.json()["data"]["path"] == "/api/clients"
        assert seen == ["Bearer a1", "Bearer a2"]
        assert identity_provider.refresh_calls == ["r1"]

    @pytest.mark.asyncio
    async def test_concurrent_unauthorized_calls_trigger_single_refresh(
        self, token_manager, coordinator, identity_provider
    ):
        await token_manager.store("a1", "r1", 3600, persistent=False)
        identity_provider.refresh_gate = asyncio.Event()
        handler, seen = _accepts_only("a2")
        calls = 5

        async with _client(token_manager, coordinator, handler) as client:
            tasks = [asyncio.create_task(client.get(f"/appointments/{i}")) for i in range(calls)]

            async def all_queued():
                while coordinator.waiter_count < calls - 1:
                    await asyncio.sleep(0)

            await asyncio.wait_for(all_queued(), timeout=5)
            identity_provider.refresh_gate.set()
            responses = await asyncio.gather(*tasks)

        assert [r.status_code for r in responses] == [200] * calls
        assert identity_provider.refresh_calls == ["r1"]
        assert seen.count("Bearer a1") == calls
        assert seen.count("Bearer a2") == calls

    @pytest.mark.asyncio
    async def test_no_second_refresh_for_same_call(self, token_manager, coordinator, identity_provider):
        await token_manager.store("a1", "r1", 3600, persistent=False)

        def handler(request):
            return httpx.Response(401, json={"error": "invalid-token"})

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(CredentialInvalidError) as exc_info:
                await client.get("/appointments")

        assert exc_info.value.status_code == 401
        assert identity_provider.refresh_calls == ["r1"]

    @pytest.mark.asyncio
    async def test_refresh_failure_surfaces_original_error(self, token_manager, coordinator, identity_provider):
        await token_manager.store("a1", "r1", 3600, persistent=False)
        identity_provider.refresh_error = CredentialInvalidError("refresh token revoked")
        expired = []
        token_manager.add_invalidation_listener(expired.append)
        handler, _ = _accepts_only("a2")

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(CredentialInvalidError) as exc_info:
                await client.get("/appointments")

        assert type(exc_info.value) is CredentialInvalidError
        assert exc_info.value.detail == "Token expired"
        assert isinstance(exc_info.value.__cause__, RefreshFailedError)
        assert len(expired) == 1
        assert await token_manager.get_access_token() is None

    @pytest.mark.asyncio
    async def test_token_renewed_elsewhere_is_reused(self, token_manager, coordinator, identity_provider):
        await token_manager.store("a1", "r1", 3600, persistent=False)

        async def handler(request):
            if request.headers["Authorization"] == "Bearer a1":
                # Another call path renewed the token while this one was in flight
                await token_manager.store("a3", "r3", 3600, persistent=False)
                return httpx.Response(401, json={})
            return httpx.Response(200, json={})

        async with _client(token_manager, coordinator, handler) as client:
            response = await client.get("/appointments")

        assert response.status_code == 200
        assert identity_provider.refresh_calls == []

    @pytest.mark.asyncio
    async def test_late_unauthorized_after_failed_refresh_signals_once(
        self, token_manager, coordinator, identity_provider
    ):
        await token_manager.store("a1", "r1", 3600, persistent=False)
        identity_provider.refresh_error = CredentialInvalidError("revoked")
        invalidations = []
        token_manager.add_invalidation_listener(invalidations.append)
        late_received = asyncio.Event()
        release_late = asyncio.Event()

        async def handler(request):
            if request.url.path.endswith("/late"):
                late_received.set()
                await release_late.wait()
            return httpx.Response(401, json={"error": "invalid-token", "message": "Token expired"})

        async with _client(token_manager, coordinator, handler) as client:
            late = asyncio.create_task(client.get("/appointments/late"))
            await asyncio.wait_for(late_received.wait(), timeout=5)

            with pytest.raises(CredentialInvalidError):
                await client.get("/appointments/first")

            release_late.set()
            with pytest.raises(CredentialInvalidError) as exc_info:
                await late

        assert type(exc_info.value) is CredentialInvalidError
        assert exc_info.value.status_code == 401
        assert invalidations == ["refresh failed: revoked"]
        assert identity_provider.refresh_calls == ["r1"]

    @pytest.mark.asyncio
    async def test_unauthorized_without_session_does_not_refresh(self, token_manager, coordinator, identity_provider):
        invalidations = []
        token_manager.add_invalidation_listener(invalidations.append)

        def handler(request):
            return httpx.Response(401, json={"error": "unauthenticated"})

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(CredentialInvalidError):
                await client.get("/appointments")

        assert identity_provider.refresh_calls == []
        assert invalidations == []


class TestClassification:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error_class",
        [
            (403, AuthorizationDeniedError),
            (404, RequestRejectedError),
            (422, RequestRejectedError),
            (500, ServerFaultError),
            (503, ServerFaultError),
        ],
    )
    async def test_status_errors_are_not_retried(
        self, token_manager, coordinator, identity_provider, status, error_class
    ):
        await token_manager.store("a1", "r1", 3600, persistent=False)
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status, json={"message": "nope"})

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(error_class) as exc_info:
                await client.get("/appointments")

        assert exc_info.value.status_code == status
        assert len(calls) == 1
        assert identity_provider.refresh_calls == []

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, token_manager, coordinator):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "120"}, json={"message": "slow down"})

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(RateLimitedError) as exc_info:
                await client.get("/appointments")

        assert exc_info.value.retry_after_seconds == 120

    @pytest.mark.asyncio
    async def test_timeout_is_network_timeout(self, token_manager, coordinator):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(NetworkTimeoutError):
                await client.get("/appointments")

    @pytest.mark.asyncio
    async def test_unreachable_is_network_error(self, token_manager, coordinator):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(token_manager, coordinator, handler) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.delete("/appointments/1")

        assert not isinstance(exc_info.value, NetworkTimeoutError)
