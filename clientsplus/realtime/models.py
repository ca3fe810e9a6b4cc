# clientsplus/realtime/models.py
from enum import Enum
from typing import Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class ConnectionPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"
    ERROR = "error"


# IDLE is reachable from every phase through an explicit disconnect.
ALLOWED_TRANSITIONS: Dict[ConnectionPhase, Set[ConnectionPhase]] = {
    ConnectionPhase.IDLE: {ConnectionPhase.CONNECTING},
    ConnectionPhase.CONNECTING: {
        ConnectionPhase.AUTHENTICATED,
        ConnectionPhase.DISCONNECTED,
        ConnectionPhase.ERROR,
    },
    ConnectionPhase.AUTHENTICATED: {ConnectionPhase.DISCONNECTED, ConnectionPhase.ERROR},
    ConnectionPhase.DISCONNECTED: {ConnectionPhase.CONNECTING},
    ConnectionPhase.ERROR: {ConnectionPhase.CONNECTING},
}


def is_transition_allowed(current: ConnectionPhase, new: ConnectionPhase) -> bool:
    return new == ConnectionPhase.IDLE or new in ALLOWED_TRANSITIONS[current]


class ConnectionState(BaseModel):
    """Observable status of the real-time channel."""
    connected: bool = False
    phase: ConnectionPhase = ConnectionPhase.IDLE
    last_error: Optional[str] = None
    reconnect_attempts: int = 0
    tenant_id: Optional[str] = None
    subject_id: Optional[str] = None
    scope_id: Optional[str] = None


class ConnectionTarget(BaseModel):
    """Credentials and scope the monitor last connected, or was asked to connect, with."""
    token: str
    tenant_id: str
    subject_id: str
    scope_id: Optional[str] = None

    def same_scope(self, tenant_id: str, subject_id: str, scope_id: Optional[str]) -> bool:
        return (self.tenant_id, self.subject_id, self.scope_id) == (tenant_id, subject_id, scope_id)


class TransportStats(BaseModel):
    """Statistics a transport reports about itself."""
    model_config = ConfigDict(populate_by_name=True)

    connected: bool = False
    phase: str = Field(default="disconnected", alias="connectionState")
    reconnect_attempts: int = Field(default=0, alias="reconnectAttempts")
    active_listeners: Dict[str, int] = Field(default_factory=dict, alias="activeListeners")
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    scope_id: Optional[str] = Field(default=None, alias="scopeId")
