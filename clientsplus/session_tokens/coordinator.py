# clientsplus/session_tokens/coordinator.py
import asyncio
import logging
from typing import List, Optional

from ..errors import RefreshFailedError
from .token_manager import SessionTokenManager

logger = logging.getLogger(__name__)


class TokenCoordinator:
    """
    Single-flight gate in front of ``SessionTokenManager.refresh``.

    At most one refresh is in flight per coordinator. Callers arriving while
    a refresh is running are queued and settled, in arrival order, with the
    same outcome as the running refresh.
    """

    def __init__(self, token_manager: SessionTokenManager):
        self.token_manager = token_manager
        self._refreshing = False
        self._waiters: List[asyncio.Future] = []

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    async def refresh(self) -> str:
        """Return a fresh access token, joining the in-flight refresh if there is one."""
        # Flag test-and-set happens before the first await.
        if self._refreshing:
            future = asyncio.get_running_loop().create_future()
            self._waiters.append(future)
            logger.debug(f"TokenCoordinator: refresh in flight, queued waiter #{len(self._waiters)}.")
            return await future

        self._refreshing = True
        try:
            credential = await self.token_manager.refresh()
        except asyncio.CancelledError:
            self._settle(error=RefreshFailedError("Token refresh was cancelled."))
            raise
        except Exception as e:
            error = e if isinstance(e, RefreshFailedError) else RefreshFailedError(f"Token refresh failed: {e}")
            self._settle(error=error)
            raise
        self._settle(token=credential.access_token)
        return credential.access_token

    def _settle(self, token: Optional[str] = None, error: Optional[BaseException] = None) -> None:
        waiters, self._waiters = self._waiters, []
        self._refreshing = False
        if waiters:
            outcome = "success" if error is None else f"failure ({type(error).__name__})"
            logger.info(f"TokenCoordinator: settling {len(waiters)} queued waiter(s) with {outcome}.")
        for future in waiters:
            if future.done():
                continue
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(token)
