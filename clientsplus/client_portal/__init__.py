# clientsplus/client_portal/__init__.py
# OTP login for end clients of the booking portal

from .models import OTPChallenge, ClientPortalSession, HandshakeState, HandshakeResult

# Pluggable challenge providers
from .challenge_providers import (
    AbstractChallengeProvider,
    HttpChallengeProvider,
    FixedCodeChallengeProvider,
    get_challenge_provider,
    validate_otp_code,
    validate_phone_number
)

from .handshake import ClientPortalAuth

__all__ = [
    "OTPChallenge",
    "ClientPortalSession",
    "HandshakeState",
    "HandshakeResult",
    "AbstractChallengeProvider",
    "HttpChallengeProvider",
    "FixedCodeChallengeProvider",
    "get_challenge_provider",
    "validate_otp_code",
    "validate_phone_number",
    "ClientPortalAuth",
]
