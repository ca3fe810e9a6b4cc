# clientsplus/client_portal/challenge_providers.py
import logging
import math
import re
import secrets
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..errors import (
    ChallengeNotFoundError,
    CredentialInvalidError,
    InvalidCodeFormatError,
    InvalidPhoneNumberError,
    RateLimitedError,
    RequestRejectedError,
    error_from_response,
    error_from_transport
)
from ..settings import settings
from ..utils.clock import Clock, utc_now
from .models import ClientPortalSession, OTPChallenge

logger = logging.getLogger(__name__)

EGYPTIAN_PHONE_PATTERN = re.compile(r"^\+20(10|11|12|15)\d{8}$")
OTP_CODE_PATTERN = re.compile(r"^\d{6}$")

CHALLENGE_TTL = timedelta(minutes=5)
MAX_VERIFY_ATTEMPTS = 3
RATE_LIMIT_WINDOW = timedelta(minutes=15)
MAX_CHALLENGES_PER_WINDOW = 3
PORTAL_SESSION_TTL = timedelta(hours=24)


def validate_phone_number(phone_number: str) -> str:
    """Return the number unchanged if it is an Egyptian mobile number, else raise ``InvalidPhoneNumberError``."""
    if not phone_number or not EGYPTIAN_PHONE_PATTERN.match(phone_number):
        raise InvalidPhoneNumberError(f"Invalid Egyptian phone number format: {phone_number!r}")
    return phone_number


def validate_otp_code(code: str) -> str:
    if not code or not OTP_CODE_PATTERN.match(code):
        raise InvalidCodeFormatError("Invalid OTP format")
    return code


class AbstractChallengeProvider(ABC):
    """Issues and verifies OTP challenges for the client portal."""

    @abstractmethod
    async def issue(self, phone_number: str) -> OTPChallenge:
        """
        Send a fresh code to ``phone_number``. Any earlier challenge for that number stops being valid.

        Raises:
            InvalidPhoneNumberError: malformed phone number
            RateLimitedError: too many challenges for this number
        """
        pass

    @abstractmethod
    async def verify(self, phone_number: str, code: str, challenge_id: Optional[str] = None) -> ClientPortalSession:
        """
        Check ``code`` against the newest outstanding challenge and open a portal session.

        Raises:
            InvalidCodeFormatError: the code is not 6 digits
            ChallengeNotFoundError: no outstanding challenge, or it expired
            CredentialInvalidError: wrong code or attempts exhausted
        """
        pass


class HttpChallengeProvider(AbstractChallengeProvider):
    """Calls the ``sendClientOTP`` / ``verifyClientOTP`` backend functions."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = utc_now
    ):
        self.base_url = (base_url or settings.functions_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.request_timeout_seconds
        self._transport = transport
        self.clock = clock

    async def _call_function(self, name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug(f"HttpChallengeProvider: calling {name}")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(f"/{name}", json={"data": data})
        except httpx.TransportError as e:
            raise error_from_transport(e) from e

        if response.is_error:
            error = error_from_response(response)
            logger.warning(f"HttpChallengeProvider: {name} failed with {response.status_code} ({error.kind.value}).")
            raise error

        body = response.json()
        result = body.get("result", body) if isinstance(body, dict) else None
        if not isinstance(result, dict):
            raise RequestRejectedError(f"Unexpected response from {name}.", status_code=response.status_code)
        if result.get("success") is False:
            raise RequestRejectedError(result.get("message") or f"{name} reported failure.")
        return result

    async def issue(self, phone_number: str) -> OTPChallenge:
        validate_phone_number(phone_number)
        result = await self._call_function("sendClientOTP", {"phoneNumber": phone_number})
        if not result.get("sessionId"):
            raise RequestRejectedError("sendClientOTP returned no session id.")
        now = self.clock()
        return OTPChallenge(
            phone_number=phone_number,
            challenge_id=result["sessionId"],
            created_at=now,
            expires_at=now + CHALLENGE_TTL,
        )

    async def verify(self, phone_number: str, code: str, challenge_id: Optional[str] = None) -> ClientPortalSession:
        validate_otp_code(code)
        result = await self._call_function(
            "verifyClientOTP", {"phoneNumber": phone_number, "otp": code, "sessionId": challenge_id}
        )
        session = result.get("session")
        if not isinstance(session, dict):
            raise RequestRejectedError("verifyClientOTP returned no session.")
        return ClientPortalSession.model_validate(session)


@dataclass
class _IssuedChallenge:
    challenge_id: str
    phone_number: str
    code: str
    created_at: datetime
    expires_at: datetime
    attempts: int = 0
    verified: bool = False


class FixedCodeChallengeProvider(AbstractChallengeProvider):
    """
    In-process provider that accepts one fixed code, for local development and tests.

    Enforces the backend's rules: codes live 5 minutes, 3 attempts per
    challenge, 3 challenges per number per 15 minutes, only the newest
    challenge counts, and a verified challenge cannot be reused.
    """

    def __init__(
        self,
        code: Optional[str] = None,
        clients: Optional[Dict[str, Tuple[str, str]]] = None,
        clock: Clock = utc_now
    ):
        self.code = code or settings.otp_fixed_code
        # phone number -> (client id, display name)
        self.clients = clients or {}
        self.clock = clock
        self._challenges: Dict[str, List[_IssuedChallenge]] = {}

    async def issue(self, phone_number: str) -> OTPChallenge:
        validate_phone_number(phone_number)
        now = self.clock()
        history = [c for c in self._challenges.get(phone_number, []) if c.created_at >= now - RATE_LIMIT_WINDOW]
        if len(history) >= MAX_CHALLENGES_PER_WINDOW:
            oldest = min(c.created_at for c in history)
            retry_after = math.ceil((oldest + RATE_LIMIT_WINDOW - now).total_seconds())
            raise RateLimitedError(
                "Too many OTP requests. Please try again later.", retry_after_seconds=max(retry_after, 0)
            )

        issued = _IssuedChallenge(
            challenge_id=uuid.uuid4().hex,
            phone_number=phone_number,
            code=self.code,
            created_at=now,
            expires_at=now + CHALLENGE_TTL,
        )
        history.append(issued)
        self._challenges[phone_number] = history
        logger.info(f"[DEV MODE] OTP for {phone_number}: {self.code} (challenge {issued.challenge_id})")
        return OTPChallenge(
            phone_number=phone_number,
            challenge_id=issued.challenge_id,
            created_at=issued.created_at,
            expires_at=issued.expires_at,
        )

    def _newest_outstanding(self, phone_number: str) -> Optional[_IssuedChallenge]:
        history = self._challenges.get(phone_number, [])
        if not history:
            return None
        newest = history[-1]
        if newest.verified or self.clock() >= newest.expires_at:
            return None
        return newest

    async def verify(self, phone_number: str, code: str, challenge_id: Optional[str] = None) -> ClientPortalSession:
        validate_otp_code(code)

        challenge = self._newest_outstanding(phone_number)
        if challenge is None or (challenge_id is not None and challenge.challenge_id != challenge_id):
            raise ChallengeNotFoundError("No valid OTP session found. Please request a new OTP.")

        if challenge.attempts >= MAX_VERIFY_ATTEMPTS:
            raise CredentialInvalidError("Maximum verification attempts exceeded. Please request a new OTP.")
        challenge.attempts += 1
        if not secrets.compare_digest(challenge.code, code):
            raise CredentialInvalidError("Invalid OTP. Please try again.")

        challenge.verified = True
        client_id, name = self.clients.get(phone_number, (f"client-{phone_number.lstrip('+')}", "Client"))
        logger.info(f"Challenge {challenge.challenge_id} verified for client {client_id}.")
        return ClientPortalSession(
            client_id=client_id,
            phone_number=phone_number,
            name=name,
            token=secrets.token_urlsafe(32),
            expires_at=self.clock() + PORTAL_SESSION_TTL,
        )


def get_challenge_provider(clock: Clock = utc_now) -> AbstractChallengeProvider:
    """Build the provider named by ``settings.otp_provider`` ('http' or 'fixed')."""
    provider_name = settings.otp_provider.lower()
    if provider_name == "http":
        return HttpChallengeProvider(clock=clock)
    if provider_name == "fixed":
        logger.warning("Using FixedCodeChallengeProvider; every portal login accepts the configured fixed code.")
        return FixedCodeChallengeProvider(clock=clock)
    raise ValueError(f"Unsupported otp_provider: {settings.otp_provider}")
