# clientsplus/session_tokens/__init__.py
# Dashboard session lifecycle: token storage, renewal and sign-in flows

# Core token models
from .models import (
    SessionCredential,
    TokenGrant,
    LoginGrant,
    AuthenticatedUser,
    AuthResult
)

# Identity backend contract and its HTTP implementation
from .identity_provider import AbstractIdentityProvider, HttpIdentityProvider

# Token storage, expiry tracking and single-flight renewal
from .token_manager import SessionTokenManager, CREDENTIAL_KEY
from .coordinator import TokenCoordinator

# Sign-in services
from .auth_service import DashboardAuthService
from .superadmin import (
    SuperadminRecord,
    SuperadminUser,
    SuperadminSession,
    AbstractSuperadminDirectory,
    HttpSuperadminDirectory,
    SuperadminAuthService
)

__all__ = [
    "SessionCredential",
    "TokenGrant",
    "LoginGrant",
    "AuthenticatedUser",
    "AuthResult",
    "AbstractIdentityProvider",
    "HttpIdentityProvider",
    "SessionTokenManager",
    "CREDENTIAL_KEY",
    "TokenCoordinator",
    "DashboardAuthService",
    "SuperadminRecord",
    "SuperadminUser",
    "SuperadminSession",
    "AbstractSuperadminDirectory",
    "HttpSuperadminDirectory",
    "SuperadminAuthService",
]
