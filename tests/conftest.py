"""Global test fixtures."""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

# Settings are read at import time; keep tests off the filesystem and the network.
os.environ.setdefault("CLIENTSPLUS_STORAGE_BACKEND", "memory")
os.environ.setdefault("CLIENTSPLUS_OTP_PROVIDER", "fixed")

import pytest

from clientsplus.realtime import AbstractRealtimeTransport, RealtimeTransportListener, TransportStats
from clientsplus.session_tokens import (
    AbstractIdentityProvider,
    AuthenticatedUser,
    LoginGrant,
    SessionTokenManager,
    TokenCoordinator,
    TokenGrant
)
from clientsplus.storage import InMemoryKeyValueStore


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeIdentityProvider(AbstractIdentityProvider):
    def __init__(self):
        self.user = AuthenticatedUser(id="user-1", email="owner@salon.example", company_id="company-1")
        self.login_grant = LoginGrant(access_token="a1", refresh_token="r1", expires_in_seconds=3600, user=self.user)
        self.login_error: Optional[Exception] = None
        self.refresh_grant = TokenGrant(access_token="a2", refresh_token="r2", expires_in_seconds=3600)
        self.refresh_error: Optional[Exception] = None
        # When set, refresh() blocks until the event is set
        self.refresh_gate: Optional[asyncio.Event] = None
        self.refresh_calls: List[str] = []
        self.logout_calls: List[str] = []

    async def login(self, email, password):
        if self.login_error:
            raise self.login_error
        return self.login_grant

    async def refresh(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        else:
            await asyncio.sleep(0)
        if self.refresh_error:
            raise self.refresh_error
        return self.refresh_grant

    async def logout(self, refresh_token):
        self.logout_calls.append(refresh_token)

    async def me(self, access_token):
        return self.user


class FakeTransport(AbstractRealtimeTransport):
    def __init__(self):
        self.connected = False
        self.authenticate_on_connect = True
        self.fail_with: Optional[Exception] = None
        self.supports_rescope = False
        self.listener: Optional[RealtimeTransportListener] = None
        self.connect_calls: List[tuple] = []
        self.rescope_calls: List[tuple] = []
        self.disconnect_calls = 0
        self.events: List[str] = []

    async def connect(self, token, tenant_id, subject_id, scope_id, listener):
        self.connect_calls.append((token, tenant_id, subject_id, scope_id))
        self.events.append("connect")
        self.listener = listener
        if self.fail_with is not None:
            raise self.fail_with
        self.connected = True
        listener.on_connect()
        if self.authenticate_on_connect:
            listener.on_authenticated()

    async def disconnect(self):
        self.disconnect_calls += 1
        self.events.append("disconnect")
        was_connected = self.connected
        self.connected = False
        if was_connected and self.listener is not None:
            self.listener.on_disconnect("io client disconnect")

    def is_connected(self):
        return self.connected

    def get_stats(self):
        return TransportStats(
            connected=self.connected,
            phase="connected" if self.connected else "disconnected",
            active_listeners={"appointment:updated": 2},
        )

    async def update_scope(self, tenant_id, subject_id, scope_id):
        if not self.supports_rescope:
            return False
        self.rescope_calls.append((tenant_id, subject_id, scope_id))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def durable_store():
    store = InMemoryKeyValueStore()
    store.durable = True
    return store


@pytest.fixture
def ephemeral_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def token_manager(identity_provider, durable_store, ephemeral_store, clock):
    return SessionTokenManager(identity_provider, durable_store, ephemeral_store, expiry_margin_seconds=300, clock=clock)


@pytest.fixture
def coordinator(token_manager):
    return TokenCoordinator(token_manager)


@pytest.fixture
def transport():
    return FakeTransport()
