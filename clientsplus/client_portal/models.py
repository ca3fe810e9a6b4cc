# clientsplus/client_portal/models.py
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ErrorKind


class HandshakeState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    AUTHENTICATED = "authenticated"


class OTPChallenge(BaseModel):
    """A one-time-password challenge issued to a phone number."""
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber")
    challenge_id: str = Field(alias="sessionId")
    created_at: datetime
    expires_at: Optional[datetime] = None


class ClientPortalSession(BaseModel):
    """Time-boxed session of an end client in the booking portal."""
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(alias="clientId")
    phone_number: str = Field(alias="phoneNumber")
    name: str
    token: str
    expires_at: datetime = Field(alias="expiresAt")

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class HandshakeResult(BaseModel):
    """Outcome of a challenge request or verification, with a localized reason on failure."""
    success: bool
    message: Optional[str] = None
    kind: Optional[ErrorKind] = None
