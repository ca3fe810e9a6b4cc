# clientsplus/session_tokens/token_manager.py
import inspect
import logging
import math
from datetime import timedelta
from typing import Any, Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError

from ..errors import RefreshFailedError
from ..settings import settings
from ..storage import AbstractKeyValueStore
from ..utils.clock import Clock, utc_now
from .identity_provider import AbstractIdentityProvider
from .models import SessionCredential

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "session_credential"
EXPIRING_SOON_MINUTES = 5

InvalidationListener = Callable[[str], Union[None, Awaitable[Any]]]


class SessionTokenManager:
    """
    Single source of truth for the dashboard user's access/refresh tokens.

    The credential is written as one JSON record into exactly one tier:
    the durable store for persistent ("remember me") sessions, the
    ephemeral store otherwise. Every read goes back to storage, so callers
    always observe the latest write after an ``await``.
    """

    def __init__(
        self,
        identity_provider: AbstractIdentityProvider,
        durable_store: AbstractKeyValueStore,
        ephemeral_store: AbstractKeyValueStore,
        expiry_margin_seconds: Optional[int] = None,
        clock: Clock = utc_now
    ):
        self.identity_provider = identity_provider
        self.durable_store = durable_store
        self.ephemeral_store = ephemeral_store
        self.expiry_margin = timedelta(
            seconds=settings.token_expiry_margin_seconds if expiry_margin_seconds is None else expiry_margin_seconds
        )
        self.clock = clock
        self._invalidation_listeners: List[InvalidationListener] = []

    # --- storage -------------------------------------------------------------------------

    async def store(self, access_token: str, refresh_token: str, ttl_seconds: int, persistent: bool) -> SessionCredential:
        """Write a new credential, replacing whatever was current in either tier."""
        now = self.clock()
        credential = SessionCredential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=ttl_seconds),
            persistent=persistent,
            issued_at=now,
        )
        target, other = (
            (self.durable_store, self.ephemeral_store) if persistent
            else (self.ephemeral_store, self.durable_store)
        )
        await target.set(CREDENTIAL_KEY, credential.model_dump_json())
        await other.delete(CREDENTIAL_KEY)
        logger.info(
            f"Stored session credential (persistent={persistent}), expires at {credential.expires_at.isoformat()}."
        )
        return credential

    async def _load(self, store: AbstractKeyValueStore) -> Optional[SessionCredential]:
        raw = await store.get(CREDENTIAL_KEY)
        if not raw:
            return None
        try:
            return SessionCredential.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable session credential in {type(store).__name__}: {e}")
            await store.delete(CREDENTIAL_KEY)
            return None

    async def get_credential(self) -> Optional[SessionCredential]:
        """Return the current credential, preferring the most recently issued one."""
        candidates = [
            c for c in (await self._load(self.ephemeral_store), await self._load(self.durable_store)) if c
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.issued_at)

    async def get_access_token(self) -> Optional[str]:
        credential = await self.get_credential()
        return credential.access_token if credential else None

    async def clear(self) -> None:
        """Erase the credential from both tiers."""
        await self.ephemeral_store.delete(CREDENTIAL_KEY)
        await self.durable_store.delete(CREDENTIAL_KEY)
        logger.info("Cleared session credential from all storage tiers.")

    # --- expiry --------------------------------------------------------------------------

    async def is_valid(self) -> bool:
        """True iff a token is present and now is before expiry minus the safety margin."""
        credential = await self.get_credential()
        if not credential or not credential.access_token:
            return False
        return self.clock() < credential.expires_at - self.expiry_margin

    async def minutes_until_expiry(self) -> int:
        credential = await self.get_credential()
        if not credential:
            return 0
        seconds_left = max(0.0, (credential.expires_at - self.clock()).total_seconds())
        return math.floor(seconds_left / 60)

    async def is_expiring_soon(self) -> bool:
        """True iff 0 < whole minutes until expiry <= 5."""
        minutes_left = await self.minutes_until_expiry()
        return 0 < minutes_left <= EXPIRING_SOON_MINUTES

    # --- renewal -------------------------------------------------------------------------

    async def refresh(self) -> SessionCredential:
        """
        Exchange the stored refresh token for a new pair.

        Fails closed: any failure, including network errors, clears the session,
        notifies invalidation listeners and raises ``RefreshFailedError``.
        Callers needing de-duplication go through ``TokenCoordinator``.
        """
        credential = await self.get_credential()
        if not credential or not credential.refresh_token:
            await self._invalidate("no refresh token available")
            raise RefreshFailedError("No refresh token available.")

        try:
            grant = await self.identity_provider.refresh(credential.refresh_token)
        except Exception as e:
            logger.warning(f"Token refresh failed: {e}")
            await self._invalidate(f"refresh failed: {e}")
            raise RefreshFailedError(f"Token refresh failed: {e}") from e

        logger.info("Token refresh succeeded.")
        return await self.store(
            grant.access_token, grant.refresh_token, grant.expires_in_seconds, credential.persistent
        )

    # --- invalidation signal -------------------------------------------------------------

    def add_invalidation_listener(self, listener: InvalidationListener) -> Callable[[], None]:
        """Register a callback fired once per session invalidation. Returns an unsubscribe function."""
        self._invalidation_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._invalidation_listeners:
                self._invalidation_listeners.remove(listener)

        return unsubscribe

    async def _invalidate(self, reason: str) -> None:
        await self.clear()
        logger.warning(f"Session invalidated: {reason}")
        for listener in list(self._invalidation_listeners):
            try:
                result = listener(reason)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in session invalidation listener: {e}", exc_info=True)
