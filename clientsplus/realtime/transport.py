# clientsplus/realtime/transport.py
from abc import ABC, abstractmethod
from typing import Optional

from .models import TransportStats


class RealtimeTransportListener:
    """
    Callbacks a transport invokes, from the event loop, as its connection changes.
    All methods default to no-ops.
    """

    def on_connect(self) -> None:
        """The socket is open; the application-level handshake may still be pending."""

    def on_authenticated(self) -> None:
        """The server accepted the credentials."""

    def on_disconnect(self, reason: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass

    def on_reconnect_attempt(self, attempt: int) -> None:
        pass

    def on_reconnect(self) -> None:
        pass


class AbstractRealtimeTransport(ABC):
    """
    Persistent push channel to the backend.

    Implementations own their own reconnection mechanics and report through
    the ``RealtimeTransportListener`` passed to ``connect``.
    """

    @abstractmethod
    async def connect(
        self,
        token: str,
        tenant_id: str,
        subject_id: str,
        scope_id: Optional[str],
        listener: RealtimeTransportListener
    ) -> None:
        """Open the channel. Raises on failure to connect."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel and release its resources. Safe to call when not connected."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Transport-level connectivity, independent of the application handshake."""
        pass

    @abstractmethod
    def get_stats(self) -> TransportStats:
        pass

    async def update_scope(self, tenant_id: str, subject_id: str, scope_id: Optional[str]) -> bool:
        """
        Re-scope the open channel in place.

        Returns:
            False when the transport cannot do so, in which case the caller reconnects
        """
        return False
