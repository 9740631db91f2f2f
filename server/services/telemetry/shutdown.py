"""Bounded analytics flush on process stop."""

import asyncio
from typing import Optional

from constants import SHUTDOWN_TIMEOUT_MS
from core.logging import get_logger
from .sinks import AnalyticsClient

logger = get_logger(__name__)


class ShutdownCoordinator:
    """Races a fixed timer against the analytics client's shutdown flush.

    Whichever finishes first ends the wait. A flush that loses the race is
    left running, not cancelled, and its result is discarded.
    """

    def __init__(self, analytics: AnalyticsClient,
                 timeout: float = SHUTDOWN_TIMEOUT_MS / 1000):
        self.analytics = analytics
        self.timeout = timeout
        self._flush_task: Optional[asyncio.Task] = None

    async def _flush(self) -> None:
        try:
            await self.analytics.flush_on_shutdown()
        except Exception as e:
            logger.warning("Analytics flush failed on shutdown", error=str(e))

    async def run(self) -> bool:
        """Wait for the flush, at most ``timeout`` seconds. Never raises.

        Returns:
            True if the flush finished within the bound, False otherwise
        """
        self._flush_task = asyncio.create_task(self._flush(), name="analytics:flush_on_shutdown")
        timer = asyncio.create_task(asyncio.sleep(self.timeout), name="shutdown:timer")

        done, _ = await asyncio.wait(
            {self._flush_task, timer},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if self._flush_task in done:
            timer.cancel()
            logger.info("Analytics flushed on shutdown")
            return True

        logger.warning("Analytics flush timed out on shutdown", timeout_seconds=self.timeout)
        return False
