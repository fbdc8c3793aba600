"""
Connectivity probe for the primary store

Holds the last known readiness state so callers do not pay a round trip per
operation. State changes on lifecycle events: a successful ping or operation
marks the primary connected, a driver error marks it disconnected. While
disconnected the primary is re-probed lazily once recheck_interval has passed.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from smartbooking.config import PRIMARY_PROBE_TIMEOUT, PRIMARY_RECHECK_INTERVAL

logger = logging.getLogger(__name__)


class ConnectivityProbe:

    def __init__(
        self,
        ping: Callable[[], Awaitable[object]],
        timeout: float = PRIMARY_PROBE_TIMEOUT,
        recheck_interval: float = PRIMARY_RECHECK_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ping = ping
        self.timeout = timeout
        self.recheck_interval = recheck_interval
        self._clock = clock
        self._connected = False
        self._last_checked: Optional[float] = None
        self.last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        """Cached state, no I/O."""
        return self._connected

    def mark_connected(self) -> None:
        if not self._connected:
            logger.info("Primary store connected")
        self._connected = True
        self.last_error = None
        self._last_checked = self._clock()

    def mark_disconnected(self, reason: Optional[str] = None) -> None:
        if self._connected:
            logger.warning(f"Primary store disconnected: {reason or 'unknown error'}")
        self._connected = False
        self.last_error = reason
        self._last_checked = self._clock()

    async def refresh(self) -> bool:
        """Ping the primary now, with a fixed timeout, and update the state."""
        try:
            await asyncio.wait_for(self._ping(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.mark_disconnected(f"ping timed out after {self.timeout}s")
        except Exception as e:
            self.mark_disconnected(str(e))
        else:
            self.mark_connected()
        return self._connected

    async def check(self) -> bool:
        """
        Current readiness.

        Returns the cached state, except that a disconnected probe whose last
        check is older than recheck_interval pings again first.
        """
        if self._connected:
            return True
        if self._last_checked is None or self._clock() - self._last_checked >= self.recheck_interval:
            return await self.refresh()
        return False
