# clientsplus/session_tokens/models.py
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, timezone

from ..errors import ErrorKind


class SessionCredential(BaseModel):
    """The current authentication material for a dashboard user."""
    access_token: str
    refresh_token: str
    expires_at: datetime = Field(description="Absolute UTC instant at which the access token expires.")
    persistent: bool = Field(
        default=False,
        description="True when stored in the durable tier, False for session-only storage."
    )
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TokenGrant(BaseModel):
    """Token pair returned by the identity provider on login or refresh."""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in_seconds: int = Field(alias="expiresIn")


class AuthenticatedUser(BaseModel):
    """User profile as reported by the identity provider."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(validation_alias=AliasChoices("id", "uid"))
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    company_id: Optional[str] = Field(default=None, alias="companyId")
    role: Optional[str] = None


class LoginGrant(TokenGrant):
    """Login response: a token pair plus the signed-in user."""
    user: AuthenticatedUser


class AuthResult(BaseModel):
    """Outcome of a dashboard sign-in attempt."""
    success: bool
    message: Optional[str] = None
    kind: Optional[ErrorKind] = None
    user: Optional[AuthenticatedUser] = None
