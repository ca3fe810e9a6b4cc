# clientsplus/errors.py
from enum import Enum
from typing import Optional

import httpx
from httpx import codes

from .messages import get_message


class ErrorKind(str, Enum):
    """Transport-independent failure categories surfaced to callers."""
    CREDENTIAL_INVALID = "credential_invalid"
    ACCOUNT_DISABLED = "account_disabled"
    RATE_LIMITED = "rate_limited"
    CHALLENGE_NOT_FOUND = "challenge_not_found"
    AUTHORIZATION_DENIED = "authorization_denied"
    NETWORK = "network"
    SERVER_FAULT = "server_fault"
    REQUEST_REJECTED = "request_rejected"


class ClientsPlusError(Exception):
    """Base class for categorized failures.

    Carries the error ``kind``, a developer-facing ``detail`` and, when the
    failure came from an HTTP response, its ``status_code``.
    """

    kind: ErrorKind = ErrorKind.REQUEST_REJECTED
    message_id: Optional[str] = None

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        self.detail = detail or self.__class__.__doc__.splitlines()[0]
        self.status_code = status_code
        super().__init__(self.detail)

    def user_message(self, locale: Optional[str] = None) -> str:
        """Localized message suitable for showing to an end user."""
        return get_message(self.message_id or self.kind.value, locale)


class CredentialInvalidError(ClientsPlusError):
    """Credentials were rejected (wrong password, wrong code, expired or rejected token)."""
    kind = ErrorKind.CREDENTIAL_INVALID

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = codes.UNAUTHORIZED):
        super().__init__(detail=detail, status_code=status_code)


class RefreshFailedError(CredentialInvalidError):
    """The refresh token could not be exchanged; the session has been cleared."""
    message_id = "session_expired"


class AccountDisabledError(ClientsPlusError):
    """The account is disabled or has not been verified."""
    kind = ErrorKind.ACCOUNT_DISABLED


class RateLimitedError(ClientsPlusError):
    """Too many attempts; the caller must wait before trying again."""
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        detail: Optional[str] = None,
        status_code: Optional[int] = codes.TOO_MANY_REQUESTS,
        retry_after_seconds: Optional[int] = None
    ):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(detail=detail, status_code=status_code)


class ChallengeNotFoundError(ClientsPlusError):
    """The OTP challenge no longer exists or has expired."""
    kind = ErrorKind.CHALLENGE_NOT_FOUND


class AuthorizationDeniedError(ClientsPlusError):
    """The caller lacks the privilege required for this operation."""
    kind = ErrorKind.AUTHORIZATION_DENIED

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = codes.FORBIDDEN):
        super().__init__(detail=detail, status_code=status_code)


class SuperadminDeniedError(AuthorizationDeniedError):
    """Access denied. This account does not have superadmin privileges."""
    message_id = "superadmin_denied"


class NetworkError(ClientsPlusError):
    """The connection could not be established."""
    kind = ErrorKind.NETWORK

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(detail=detail, status_code=status_code)


class NetworkTimeoutError(NetworkError):
    """The request timed out."""
    message_id = "network_timeout"


class ServerFaultError(ClientsPlusError):
    """The server failed to handle the request."""
    kind = ErrorKind.SERVER_FAULT


class RequestRejectedError(ClientsPlusError):
    """The server rejected the request."""
    kind = ErrorKind.REQUEST_REJECTED


class InvalidPhoneNumberError(RequestRejectedError):
    """Invalid Egyptian phone number format."""
    message_id = "otp_invalid_phone"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = codes.BAD_REQUEST):
        super().__init__(detail=detail, status_code=status_code)


class InvalidCodeFormatError(RequestRejectedError):
    """The verification code must be 6 digits."""
    message_id = "otp_invalid_code"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = codes.BAD_REQUEST):
        super().__init__(detail=detail, status_code=status_code)


# Backend error codes that map to a more specific kind than the HTTP status alone.
ERROR_CODE_CLASSES = {
    "auth/wrong-password": CredentialInvalidError,
    "auth/user-not-found": CredentialInvalidError,
    "auth/invalid-email": CredentialInvalidError,
    "auth/invalid-credential": CredentialInvalidError,
    "invalid-grant": CredentialInvalidError,
    "invalid-token": CredentialInvalidError,
    "auth/user-disabled": AccountDisabledError,
    "auth/email-not-verified": AccountDisabledError,
    "auth/too-many-requests": RateLimitedError,
    "resource-exhausted": RateLimitedError,
    "not-found": ChallengeNotFoundError,
    "permission-denied": CredentialInvalidError,
    "unauthenticated": CredentialInvalidError,
    "unavailable": ServerFaultError,
    "internal": ServerFaultError,
}


def classify_status(status_code: int, detail: Optional[str] = None, error_code: Optional[str] = None) -> ClientsPlusError:
    """Build the categorized error for a failed response."""
    if error_code:
        code = error_code.lower().replace("_", "-")
        # Callable backends prefix their codes with "functions/"
        if code.startswith("functions/"):
            code = code[len("functions/"):]
        error_class = ERROR_CODE_CLASSES.get(code)
        if error_class is not None:
            return error_class(detail=detail, status_code=status_code)

    if status_code == codes.UNAUTHORIZED:
        return CredentialInvalidError(detail=detail, status_code=status_code)
    if status_code == codes.FORBIDDEN:
        return AuthorizationDeniedError(detail=detail, status_code=status_code)
    if status_code == codes.TOO_MANY_REQUESTS:
        return RateLimitedError(detail=detail, status_code=status_code)
    if status_code >= codes.INTERNAL_SERVER_ERROR:
        return ServerFaultError(detail=detail, status_code=status_code)
    return RequestRejectedError(detail=detail, status_code=status_code)


def error_from_response(response: httpx.Response) -> ClientsPlusError:
    """Classify a failed ``httpx.Response``, reading ``error``/``message`` from a JSON body when present."""
    error_code: Optional[str] = None
    detail: Optional[str] = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        payload = body.get("error")
        if isinstance(payload, dict):
            # Callable-function style: {"error": {"status": ..., "message": ...}}
            error_code = payload.get("status") or payload.get("code")
            detail = payload.get("message")
        else:
            error_code = payload or body.get("code")
            detail = body.get("message") or body.get("detail")
    if not detail:
        detail = f"HTTP {response.status_code}"

    error = classify_status(response.status_code, detail=detail, error_code=error_code if isinstance(error_code, str) else None)
    if isinstance(error, RateLimitedError):
        retry_after = response.headers.get("retry-after")
        if retry_after and retry_after.isdigit():
            error.retry_after_seconds = int(retry_after)
    return error


def error_from_transport(exc: httpx.TransportError) -> NetworkError:
    """Classify a transport failure: timeouts and unreachable hosts are both network errors."""
    if isinstance(exc, httpx.TimeoutException):
        return NetworkTimeoutError(detail=f"Request timed out: {exc}")
    return NetworkError(detail=f"Network unreachable: {exc}")
