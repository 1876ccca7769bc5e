"""Trailing-edge throttle for activity heartbeats."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 10.0


class HeartbeatThrottle:
    """Coalesce heartbeat reports into at most one send per interval.

    The first ``report`` in a quiet period arms a timer; reports made while
    the timer is armed only replace the pending details. When the timer fires
    the latest details are sent. After ``stop`` nothing is sent anymore.
    """

    def __init__(
        self,
        send: Callable[[Any], Awaitable[None]],
        interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError("Heartbeat interval must be positive")
        self._send = send
        self._interval = interval
        self._latest: Any = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Optional[asyncio.Task] = None
        self._stopped = False
        self.sent = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def stopped(self) -> bool:
        return self._stopped

    def report(self, details: Any = None) -> None:
        """Queue ``details`` for the next heartbeat. Must run on the event loop."""
        if self._stopped:
            return
        self._latest = details
        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._interval, self._fire)

    def stop(self) -> None:
        """Cancel any armed timer or in-flight send; ignore later reports."""
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

    def _fire(self) -> None:
        self._timer = None
        if self._stopped:
            return
        details, self._latest = self._latest, None
        self._inflight = asyncio.ensure_future(self._deliver(details))

    async def _deliver(self, details: Any) -> None:
        try:
            await self._send(details)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to record heartbeat: {e}")
        else:
            self.sent += 1
