# clientsplus/realtime/__init__.py
# Real-time channel health and lifecycle policies

from .models import (
    ConnectionPhase,
    ConnectionState,
    ConnectionTarget,
    TransportStats,
    ALLOWED_TRANSITIONS,
    is_transition_allowed
)
from .transport import AbstractRealtimeTransport, RealtimeTransportListener
from .monitor import RealtimeConnectionMonitor, PREFERENCE_KEY

__all__ = [
    "ConnectionPhase",
    "ConnectionState",
    "ConnectionTarget",
    "TransportStats",
    "ALLOWED_TRANSITIONS",
    "is_transition_allowed",
    "AbstractRealtimeTransport",
    "RealtimeTransportListener",
    "RealtimeConnectionMonitor",
    "PREFERENCE_KEY",
]
