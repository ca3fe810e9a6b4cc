# clientsplus/session_tokens/superadmin.py
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ClientsPlusError, SuperadminDeniedError, error_from_response, error_from_transport
from ..settings import settings
from ..storage import AbstractKeyValueStore
from ..utils.clock import Clock, utc_now
from .identity_provider import AbstractIdentityProvider

logger = logging.getLogger(__name__)

SUPERADMIN_SESSION_KEY = "superadmin_session"
SUPERADMIN_ROLE = "superadmin"


class SuperadminRecord(BaseModel):
    """Entry in the superadmin directory."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    role: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")


class SuperadminUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    email: str = ""
    display_name: str = Field(default="Superadmin", alias="displayName")
    role: str = SUPERADMIN_ROLE
    last_login: datetime = Field(alias="lastLogin")


class SuperadminSession(BaseModel):
    """Stored console session: the user plus the identity-provider tokens used to re-verify it."""
    user: SuperadminUser
    created_at: datetime
    access_token: str
    refresh_token: str
    expires_at: datetime


class AbstractSuperadminDirectory(ABC):
    """Lookup of accounts holding platform-wide superadmin privileges."""

    @abstractmethod
    async def lookup(self, uid: str, access_token: Optional[str] = None) -> Optional[SuperadminRecord]:
        """Return the directory entry for ``uid`` or None when there is none."""
        pass

    async def is_superadmin(self, uid: str, access_token: Optional[str] = None) -> bool:
        record = await self.lookup(uid, access_token)
        return record is not None and record.role == SUPERADMIN_ROLE


class HttpSuperadminDirectory(AbstractSuperadminDirectory):
    """Directory backed by ``GET /superadmins/{uid}`` on the dashboard API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.request_timeout_seconds
        self._transport = transport

    async def lookup(self, uid: str, access_token: Optional[str] = None) -> Optional[SuperadminRecord]:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.get(f"/superadmins/{uid}", headers=headers)
        except httpx.TransportError as e:
            raise error_from_transport(e) from e

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            raise error_from_response(response)
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        return SuperadminRecord.model_validate(body)


class SuperadminAuthService:
    """
    Sign-in for the platform console.

    A successful sign-in requires both a valid identity-provider login and a
    superadmin directory entry. The resulting session is kept in ``store``
    and trusted for at most ``settings.superadmin_session_max_age_seconds``.
    The session keeps the login tokens; ``restore`` renews an expired access
    token and re-verifies the role with it.
    """

    def __init__(
        self,
        identity_provider: AbstractIdentityProvider,
        directory: AbstractSuperadminDirectory,
        store: AbstractKeyValueStore,
        max_age_seconds: Optional[int] = None,
        clock: Clock = utc_now
    ):
        self.identity_provider = identity_provider
        self.directory = directory
        self.store = store
        self.max_age = timedelta(
            seconds=settings.superadmin_session_max_age_seconds if max_age_seconds is None else max_age_seconds
        )
        self.clock = clock
        self.current: Optional[SuperadminUser] = None
        self.session: Optional[SuperadminSession] = None

    async def sign_in(self, email: str, password: str) -> SuperadminUser:
        """
        Raises:
            SuperadminDeniedError: the account is not a superadmin; the partial session is logged out
            ClientsPlusError: login itself failed
        """
        grant = await self.identity_provider.login(email, password)
        uid = grant.user.id

        try:
            record = await self.directory.lookup(uid, grant.access_token)
        except ClientsPlusError as e:
            logger.error(f"Superadmin lookup failed for {uid}: {e}")
            await self._discard_partial_session(grant.refresh_token)
            if e.status_code == httpx.codes.FORBIDDEN:
                raise SuperadminDeniedError(status_code=e.status_code) from e
            raise

        if record is None or record.role != SUPERADMIN_ROLE:
            logger.warning(f"Superadmin sign-in denied for {uid}: role={record.role if record else None}")
            await self._discard_partial_session(grant.refresh_token)
            raise SuperadminDeniedError()

        now = self.clock()
        user = SuperadminUser(
            uid=uid,
            email=grant.user.email or "",
            display_name=record.display_name or "Superadmin",
            last_login=now,
        )
        session = SuperadminSession(
            user=user,
            created_at=now,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=now + timedelta(seconds=grant.expires_in_seconds),
        )
        await self.store.set(SUPERADMIN_SESSION_KEY, session.model_dump_json())
        self.session = session
        self.current = user
        logger.info(f"Superadmin {uid} signed in.")
        return user

    async def _discard_partial_session(self, refresh_token: str) -> None:
        try:
            await self.identity_provider.logout(refresh_token)
        except ClientsPlusError as e:
            logger.warning(f"Could not revoke partial superadmin session: {e}")

    async def restore(self) -> Optional[SuperadminUser]:
        """Reload a stored session if it is younger than the max age and still confirmed by the directory."""
        raw = await self.store.get(SUPERADMIN_SESSION_KEY)
        if not raw:
            return None
        try:
            session = SuperadminSession.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable superadmin session: {e}")
            await self.store.delete(SUPERADMIN_SESSION_KEY)
            return None

        if self.clock() - session.created_at >= self.max_age:
            logger.info("Stored superadmin session expired.")
            await self.store.delete(SUPERADMIN_SESSION_KEY)
            return None

        try:
            session = await self._renew_if_expired(session)
            confirmed = await self.directory.is_superadmin(session.user.uid, session.access_token)
        except ClientsPlusError as e:
            logger.error(f"Error verifying superadmin session: {e}")
            confirmed = False
        if not confirmed:
            await self.store.delete(SUPERADMIN_SESSION_KEY)
            return None

        self.session = session
        self.current = session.user
        return session.user

    async def _renew_if_expired(self, session: SuperadminSession) -> SuperadminSession:
        now = self.clock()
        if now < session.expires_at:
            return session
        logger.info(f"Renewing expired access token for superadmin {session.user.uid}.")
        grant = await self.identity_provider.refresh(session.refresh_token)
        renewed = session.model_copy(update={
            "access_token": grant.access_token,
            "refresh_token": grant.refresh_token,
            "expires_at": now + timedelta(seconds=grant.expires_in_seconds),
        })
        await self.store.set(SUPERADMIN_SESSION_KEY, renewed.model_dump_json())
        return renewed

    async def sign_out(self) -> None:
        await self.store.delete(SUPERADMIN_SESSION_KEY)
        self.session = None
        self.current = None
        logger.info("Superadmin signed out.")
