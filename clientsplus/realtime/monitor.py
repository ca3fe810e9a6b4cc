# clientsplus/realtime/monitor.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import ClientsPlusError
from ..session_tokens.coordinator import TokenCoordinator
from ..session_tokens.token_manager import SessionTokenManager
from ..settings import settings
from ..storage import AbstractKeyValueStore
from .models import ConnectionPhase, ConnectionState, ConnectionTarget, is_transition_allowed
from .transport import AbstractRealtimeTransport, RealtimeTransportListener

logger = logging.getLogger(__name__)

PREFERENCE_KEY = "websocket-enabled"

StateListener = Callable[[ConnectionState, bool], None]


class RealtimeConnectionMonitor(RealtimeTransportListener):
    """
    Debounced view of the real-time channel for the rest of the application.

    Tracks the connection phase, derives a health flag (phase is authenticated
    AND the transport reports connected) and applies the session policies:
    connect on login, disconnect on logout or session invalidation, reconnect
    on a liveness hint, and renew the connection when the access token is
    about to expire. Failures never propagate to callers; they become the
    ``error`` phase with ``last_error`` set.
    """

    def __init__(
        self,
        transport: AbstractRealtimeTransport,
        token_manager: SessionTokenManager,
        coordinator: TokenCoordinator,
        preference_store: AbstractKeyValueStore,
        health_interval_seconds: Optional[float] = None,
        token_check_interval_seconds: Optional[float] = None
    ):
        self.transport = transport
        self.token_manager = token_manager
        self.coordinator = coordinator
        self.preference_store = preference_store
        self.health_interval = health_interval_seconds or settings.realtime_health_interval_seconds
        self.token_check_interval = token_check_interval_seconds or settings.token_check_interval_seconds

        self.state = ConnectionState()
        self.healthy = False
        self.updates_enabled = settings.realtime_updates_default
        self._target: Optional[ConnectionTarget] = None
        self._signed_in = False

        self._tasks: List[asyncio.Task] = []
        self._task_generation = 0
        self._state_listeners: List[StateListener] = []
        self._unsubscribe_invalidation = token_manager.add_invalidation_listener(self._on_session_invalidated)

    # --- observers -----------------------------------------------------------------------

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """``listener(state, healthy)`` is called after every state or health change."""
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.state.model_copy()
        for listener in list(self._state_listeners):
            try:
                listener(snapshot, self.healthy)
            except Exception as e:
                logger.error(f"Error in connection state listener: {e}", exc_info=True)

    def _transition(self, new_phase: ConnectionPhase) -> bool:
        current = self.state.phase
        if new_phase == current:
            return True
        if not is_transition_allowed(current, new_phase):
            logger.warning(f"Ignoring illegal connection transition {current.value} -> {new_phase.value}.")
            return False

        logger.debug(f"Connection phase {current.value} -> {new_phase.value}")
        self.state.phase = new_phase
        if new_phase == ConnectionPhase.AUTHENTICATED:
            self.state.connected = True
        elif new_phase != ConnectionPhase.CONNECTING:
            self.state.connected = False
        if new_phase != ConnectionPhase.AUTHENTICATED:
            self.healthy = False
        self._notify()
        return True

    # --- transport callbacks -------------------------------------------------------------

    def on_connect(self) -> None:
        self.state.connected = True
        self.state.reconnect_attempts = 0
        self._notify()

    def on_authenticated(self) -> None:
        self.state.last_error = None
        self._transition(ConnectionPhase.AUTHENTICATED)

    def on_disconnect(self, reason: str) -> None:
        logger.info(f"Real-time channel disconnected: {reason}")
        self._transition(ConnectionPhase.DISCONNECTED)

    def on_error(self, message: str) -> None:
        logger.error(f"Real-time channel error: {message}")
        self.state.last_error = message
        if not self._transition(ConnectionPhase.ERROR):
            self._notify()

    def on_reconnect_attempt(self, attempt: int) -> None:
        self.state.reconnect_attempts = attempt
        if not self._transition(ConnectionPhase.CONNECTING):
            self._notify()

    def on_reconnect(self) -> None:
        logger.info("Real-time channel reconnected.")
        self.state.connected = True
        self._notify()

    # --- health --------------------------------------------------------------------------

    def evaluate_health(self) -> bool:
        """Healthy iff the phase is authenticated and the transport itself reports connected."""
        try:
            transport_connected = self.transport.is_connected()
        except Exception as e:
            logger.error(f"Transport connectivity check failed: {e}")
            transport_connected = False
        healthy = self.state.phase == ConnectionPhase.AUTHENTICATED and transport_connected
        if healthy != self.healthy:
            self.healthy = healthy
            self._notify()
        return healthy

    async def notify_liveness_hint(self) -> None:
        """
        The host regained attention (app resumed, visibility regained).
        Reconnects when unhealthy, real-time updates are enabled and there is something to reconnect to.
        """
        if self.evaluate_health():
            return
        if not self.updates_enabled or self._target is None:
            return
        if not self._signed_in and self.state.phase == ConnectionPhase.IDLE:
            return
        logger.info("Liveness hint while unhealthy, reconnecting real-time channel.")
        await self._open(await self._fresh_target(self._target))

    # --- scheduled tasks -----------------------------------------------------------------

    def _ensure_tasks(self) -> None:
        if self._tasks:
            return
        generation = self._task_generation
        self._tasks = [
            asyncio.create_task(self._run_periodic(self.health_interval, self._health_job, generation)),
            asyncio.create_task(self._run_periodic(self.token_check_interval, self._check_token, generation)),
        ]

    async def _cancel_tasks(self) -> None:
        self._task_generation += 1
        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        pending = [task for task in tasks if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_periodic(self, interval: float, job: Callable[[], Awaitable[Any]], generation: int) -> None:
        while generation == self._task_generation:
            await asyncio.sleep(interval)
            if generation != self._task_generation:
                break
            try:
                await job()
            except ClientsPlusError as e:
                logger.error(f"Scheduled connection job {job.__name__} failed: {e}")
            except Exception as e:
                logger.error(f"Unexpected error in scheduled connection job {job.__name__}: {e}", exc_info=True)

    async def _health_job(self) -> None:
        self.evaluate_health()

    async def _check_token(self) -> None:
        """Renew the access token and the connection when the token is about to expire."""
        if self.state.phase == ConnectionPhase.IDLE or self._target is None:
            return
        if not await self.token_manager.is_expiring_soon():
            return
        logger.info("Access token expiring soon, refreshing before renewing the real-time channel.")
        try:
            new_token = await self.coordinator.refresh()
        except ClientsPlusError as e:
            # Session invalidation already tore the connection down.
            logger.warning(f"Proactive token refresh failed: {e}")
            return
        target = self._target.model_copy(update={"token": new_token})
        await self._open(target)

    # --- connection lifecycle ------------------------------------------------------------

    async def _fresh_target(self, target: ConnectionTarget) -> ConnectionTarget:
        token = await self.token_manager.get_access_token()
        if token and token != target.token:
            return target.model_copy(update={"token": token})
        return target

    async def _close_transport(self) -> None:
        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.warning(f"Error while closing real-time transport: {e}")

    async def _open(self, target: ConnectionTarget) -> None:
        """Tear down whatever is open and start a fresh connect cycle for ``target``."""
        # Disconnected and error phases may still hold a transport that is retrying on its own.
        if self.state.phase != ConnectionPhase.IDLE:
            await self._close_transport()
            if self.state.phase in (ConnectionPhase.CONNECTING, ConnectionPhase.AUTHENTICATED):
                self._transition(ConnectionPhase.DISCONNECTED)

        self._target = target
        self.state.tenant_id = target.tenant_id
        self.state.subject_id = target.subject_id
        self.state.scope_id = target.scope_id
        self._transition(ConnectionPhase.CONNECTING)
        self._ensure_tasks()

        logger.info(f"Connecting real-time channel for tenant {target.tenant_id} (scope {target.scope_id}).")
        try:
            await self.transport.connect(target.token, target.tenant_id, target.subject_id, target.scope_id, self)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect real-time channel: {e}")
            self.state.last_error = str(e)
            if not self._transition(ConnectionPhase.ERROR):
                self._notify()
            return
        self.evaluate_health()

    async def connect(self, token: str, tenant_id: str, subject_id: str, scope_id: Optional[str] = None) -> None:
        """Open the channel for the given scope. No-op when already authenticated with that scope."""
        if (
            self.state.phase == ConnectionPhase.AUTHENTICATED
            and self._target is not None
            and self._target.same_scope(tenant_id, subject_id, scope_id)
        ):
            logger.debug("Real-time channel already authenticated for this scope.")
            return
        await self._open(ConnectionTarget(token=token, tenant_id=tenant_id, subject_id=subject_id, scope_id=scope_id))

    async def update_scope(self, tenant_id: str, subject_id: str, scope_id: Optional[str] = None) -> None:
        """Re-scope the open channel in place when the transport allows it, else reconnect."""
        if self._target is None:
            logger.debug("No connection target yet; scope change ignored.")
            return
        target = self._target.model_copy(update={"tenant_id": tenant_id, "subject_id": subject_id, "scope_id": scope_id})
        if self.state.phase != ConnectionPhase.AUTHENTICATED:
            # Applied on the next connect cycle.
            self._target = target
            return

        try:
            rescoped = await self.transport.update_scope(tenant_id, subject_id, scope_id)
        except Exception as e:
            logger.warning(f"In-place rescope failed, reconnecting instead: {e}")
            rescoped = False

        if rescoped:
            self._target = target
            self.state.tenant_id = tenant_id
            self.state.subject_id = subject_id
            self.state.scope_id = scope_id
            self._notify()
            return

        await self.disconnect()
        await self._open(await self._fresh_target(target))

    async def disconnect(self) -> None:
        """Close the channel, stop scheduled checks and return to idle."""
        await self._cancel_tasks()
        await self._close_transport()
        self.state.last_error = None
        self.state.reconnect_attempts = 0
        self._transition(ConnectionPhase.IDLE)
        self.healthy = False
        logger.info("Real-time channel disconnected by request.")

    async def reconnect(self) -> bool:
        """
        Force a fresh connect cycle with the last-known credentials and scope.

        Returns:
            False when there is nothing to reconnect (idle) or real-time updates are disabled
        """
        if self.state.phase == ConnectionPhase.IDLE or self._target is None:
            logger.warning("Reconnect requested while idle; ignoring.")
            return False
        if not self.updates_enabled:
            return False
        await self._open(await self._fresh_target(self._target))
        return True

    # --- session policies ----------------------------------------------------------------

    async def on_login(self, token: str, tenant_id: str, subject_id: str, scope_id: Optional[str] = None) -> None:
        self._signed_in = True
        self._target = ConnectionTarget(token=token, tenant_id=tenant_id, subject_id=subject_id, scope_id=scope_id)
        if self.updates_enabled:
            await self.connect(token, tenant_id, subject_id, scope_id)

    async def on_logout(self) -> None:
        self._signed_in = False
        self._target = None
        await self.disconnect()

    async def _on_session_invalidated(self, reason: str) -> None:
        logger.info(f"Session invalidated ({reason}); closing real-time channel.")
        await self.on_logout()

    # --- preference ----------------------------------------------------------------------

    async def load_preference(self) -> bool:
        """Read the persisted real-time updates preference, keeping the default when none is stored."""
        stored = await self.preference_store.get(PREFERENCE_KEY)
        if stored is not None:
            self.updates_enabled = stored == "true"
        return self.updates_enabled

    async def set_updates_enabled(self, enabled: bool) -> None:
        self.updates_enabled = enabled
        await self.preference_store.set(PREFERENCE_KEY, "true" if enabled else "false")
        if not enabled and self.state.phase != ConnectionPhase.IDLE:
            await self.disconnect()
        elif enabled and self._signed_in and self._target is not None and not self.evaluate_health():
            await self._open(await self._fresh_target(self._target))

    # --- stats ---------------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Transport statistics merged with the monitor's own view."""
        try:
            stats = self.transport.get_stats().model_dump(by_alias=True)
        except Exception as e:
            logger.error(f"Could not read transport stats: {e}")
            stats = {}
        stats.update({
            "phase": self.state.phase.value,
            "healthy": self.healthy,
            "lastError": self.state.last_error,
            "reconnectAttempts": max(stats.get("reconnectAttempts", 0), self.state.reconnect_attempts),
            "tenantId": self.state.tenant_id,
            "subjectId": self.state.subject_id,
            "scopeId": self.state.scope_id,
            "realtimeUpdatesEnabled": self.updates_enabled,
        })
        return stats

    async def aclose(self) -> None:
        self._unsubscribe_invalidation()
        await self.disconnect()
