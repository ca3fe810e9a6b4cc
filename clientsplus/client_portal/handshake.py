# clientsplus/client_portal/handshake.py
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError

from ..errors import (
    ChallengeNotFoundError,
    ClientsPlusError,
    CredentialInvalidError,
    ErrorKind,
    InvalidCodeFormatError,
    InvalidPhoneNumberError,
    RateLimitedError
)
from ..messages import get_message
from ..settings import settings
from ..storage import AbstractKeyValueStore
from ..utils.clock import Clock, utc_now
from .challenge_providers import AbstractChallengeProvider
from .models import ClientPortalSession, HandshakeResult, HandshakeState, OTPChallenge

logger = logging.getLogger(__name__)

SESSION_KEY = "clientPortalSession"
CHALLENGE_ID_KEY = "otpSessionId"


class ClientPortalAuth:
    """
    Phone-number login for the client portal.

    IDLE --request_challenge--> PENDING --verify--> AUTHENTICATED --logout/expiry--> IDLE.
    The portal session is persisted in ``durable_store``; the outstanding
    challenge id lives only in ``ephemeral_store``.
    """

    def __init__(
        self,
        provider: AbstractChallengeProvider,
        durable_store: AbstractKeyValueStore,
        ephemeral_store: AbstractKeyValueStore,
        locale: Optional[str] = None,
        resend_cooldown_seconds: Optional[int] = None,
        clock: Clock = utc_now
    ):
        self.provider = provider
        self.durable_store = durable_store
        self.ephemeral_store = ephemeral_store
        self.locale = locale or settings.locale
        self.resend_cooldown = timedelta(
            seconds=settings.otp_resend_cooldown_seconds if resend_cooldown_seconds is None else resend_cooldown_seconds
        )
        self.clock = clock

        self.state = HandshakeState.IDLE
        self.session: Optional[ClientPortalSession] = None
        self.pending_challenge: Optional[OTPChallenge] = None
        self._last_challenge_at: Optional[datetime] = None

    def _failure(self, message_id: str, kind: Optional[ErrorKind]) -> HandshakeResult:
        return HandshakeResult(success=False, message=get_message(message_id, self.locale), kind=kind)

    async def _purge_session(self) -> None:
        await self.durable_store.delete(SESSION_KEY)
        self.session = None
        self.state = HandshakeState.IDLE

    async def restore(self) -> Optional[ClientPortalSession]:
        """Load a persisted session if it has not expired; otherwise purge it."""
        raw = await self.durable_store.get(SESSION_KEY)
        if not raw:
            return None
        try:
            session = ClientPortalSession.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Error loading client session: {e}")
            await self._purge_session()
            return None

        if not session.is_valid(self.clock()):
            logger.info(f"Stored portal session for client {session.client_id} expired; purging.")
            await self._purge_session()
            return None

        self.session = session
        self.state = HandshakeState.AUTHENTICATED
        return session

    async def request_challenge(self, phone_number: str) -> HandshakeResult:
        """
        Ask the provider to send a code to ``phone_number``. A new request supersedes the previous one.

        A live portal session ends once the new challenge is issued; the next ``verify`` replaces it.
        """
        try:
            challenge = await self.provider.issue(phone_number)
        except RateLimitedError as e:
            logger.warning(f"OTP request for {phone_number} rate limited: {e.detail}")
            return self._failure("rate_limited", e.kind)
        except InvalidPhoneNumberError as e:
            logger.info(f"OTP request rejected: {e.detail}")
            return self._failure("otp_invalid_phone", e.kind)
        except ClientsPlusError as e:
            logger.error(f"OTP request for {phone_number} failed: {e.kind.value} ({e.detail})")
            return self._failure("otp_send_failed", e.kind)

        if self.session is not None:
            logger.info(f"New OTP challenge requested; ending portal session for client {self.session.client_id}.")
            await self._purge_session()
        await self.ephemeral_store.set(CHALLENGE_ID_KEY, challenge.challenge_id)
        self.pending_challenge = challenge
        self._last_challenge_at = self.clock()
        self.state = HandshakeState.PENDING
        logger.info(f"OTP challenge {challenge.challenge_id} issued for {phone_number}.")
        return HandshakeResult(success=True)

    async def verify(self, code: str) -> HandshakeResult:
        """Submit the code for the outstanding challenge; on success the portal session becomes current."""
        if self.state != HandshakeState.PENDING or self.pending_challenge is None:
            return self._failure("challenge_not_found", ErrorKind.CHALLENGE_NOT_FOUND)

        phone_number = self.pending_challenge.phone_number
        challenge_id = await self.ephemeral_store.get(CHALLENGE_ID_KEY)
        try:
            session = await self.provider.verify(phone_number, code, challenge_id)
        except ChallengeNotFoundError as e:
            logger.info(f"OTP verification for {phone_number}: challenge not found ({e.detail})")
            return self._failure("challenge_not_found", e.kind)
        except InvalidCodeFormatError as e:
            logger.info(f"OTP verification for {phone_number} rejected: {e.detail}")
            return self._failure("otp_invalid_code", e.kind)
        except CredentialInvalidError as e:
            logger.info(f"OTP verification for {phone_number} rejected: {e.detail}")
            return self._failure("otp_wrong_code", e.kind)
        except ClientsPlusError as e:
            logger.error(f"OTP verification error for {phone_number}: {e.kind.value} ({e.detail})")
            return self._failure("otp_verify_failed", e.kind)

        await self.durable_store.set(SESSION_KEY, session.model_dump_json(by_alias=True))
        await self.ephemeral_store.delete(CHALLENGE_ID_KEY)
        self.pending_challenge = None
        self.session = session
        self.state = HandshakeState.AUTHENTICATED
        logger.info(f"Client {session.client_id} authenticated until {session.expires_at.isoformat()}.")
        return HandshakeResult(success=True)

    async def logout(self) -> None:
        await self._purge_session()
        await self.ephemeral_store.delete(CHALLENGE_ID_KEY)
        self.pending_challenge = None
        logger.info("Client portal session ended.")

    async def get_session(self) -> Optional[ClientPortalSession]:
        """The current session, or None. An expired session is purged here, not renewed."""
        if self.session is None:
            return None
        if not self.session.is_valid(self.clock()):
            logger.info(f"Portal session for client {self.session.client_id} expired.")
            await self._purge_session()
            return None
        return self.session

    async def is_authenticated(self) -> bool:
        return await self.get_session() is not None

    def cooldown_remaining(self) -> int:
        """Seconds until another challenge should be requested; 0 when allowed now."""
        if self._last_challenge_at is None:
            return 0
        remaining = (self._last_challenge_at + self.resend_cooldown - self.clock()).total_seconds()
        return max(0, math.ceil(remaining))
