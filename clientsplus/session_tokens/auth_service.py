# clientsplus/session_tokens/auth_service.py
import logging
from typing import Optional

from ..errors import ClientsPlusError, CredentialInvalidError
from ..settings import settings
from .identity_provider import AbstractIdentityProvider
from .models import AuthenticatedUser, AuthResult
from .token_manager import SessionTokenManager

logger = logging.getLogger(__name__)


class DashboardAuthService:
    """Email/password sign-in for dashboard users on top of the token manager."""

    def __init__(
        self,
        identity_provider: AbstractIdentityProvider,
        token_manager: SessionTokenManager,
        locale: Optional[str] = None
    ):
        self.identity_provider = identity_provider
        self.token_manager = token_manager
        self.locale = locale or settings.locale

    async def login(self, email: str, password: str, remember_me: bool = False) -> AuthResult:
        """
        Sign in and store the issued token pair.

        ``remember_me`` selects the durable tier so the session survives a restart.
        Failures come back as an unsuccessful ``AuthResult`` carrying a localized message.
        """
        try:
            grant = await self.identity_provider.login(email, password)
        except ClientsPlusError as e:
            logger.warning(f"Login failed for {email}: {e.kind.value} ({e.detail})")
            return AuthResult(success=False, message=e.user_message(self.locale), kind=e.kind)

        await self.token_manager.store(
            grant.access_token, grant.refresh_token, grant.expires_in_seconds, persistent=remember_me
        )
        logger.info(f"User {grant.user.id} signed in (remember_me={remember_me}).")
        return AuthResult(success=True, user=grant.user)

    async def logout(self) -> None:
        """Revoke the refresh token server-side when possible, then clear local state."""
        credential = await self.token_manager.get_credential()
        if credential and credential.refresh_token:
            try:
                await self.identity_provider.logout(credential.refresh_token)
            except ClientsPlusError as e:
                logger.warning(f"Server-side logout failed, clearing local session anyway: {e}")
        await self.token_manager.clear()

    async def current_user(self) -> AuthenticatedUser:
        access_token = await self.token_manager.get_access_token()
        if not access_token:
            raise CredentialInvalidError("No active session.")
        return await self.identity_provider.me(access_token)

    async def is_authenticated(self) -> bool:
        return await self.token_manager.is_valid()
