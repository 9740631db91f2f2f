"""Fire-and-forget fan-out to the analytics and audit sinks.

Every sink call runs as a detached asyncio task. The caller never waits for
delivery and never sees a sink failure: failures are observed only through
the log record written by the task's done-callback.
"""

import asyncio
from typing import Any, Awaitable, Callable, Set

from core.logging import get_logger, log_dispatch

logger = get_logger(__name__)

SinkCall = Callable[..., Awaitable[Any]]


class EventDispatcher:
    """Spawns sink calls as background tasks and keeps them alive until done.

    Calls to the same sink are started in the order they were dispatched;
    there is no ordering between sinks and no retry.
    """

    def __init__(self):
        # Strong references: the event loop only keeps weak ones
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of sink calls still in flight."""
        return len(self._tasks)

    def dispatch(self, sink: str, event_name: str, call: SinkCall, *args: Any) -> asyncio.Task:
        """Start ``call(*args)`` in the background.

        Args:
            sink: Sink label for logging ("analytics", "audit", ...)
            event_name: Event being delivered, for logging
            call: Async sink method
            *args: Arguments for the sink method

        Returns:
            The spawned task (callers normally ignore it)
        """
        async def run() -> None:
            await call(*args)

        task = asyncio.create_task(run(), name=f"{sink}:{event_name}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, sink, event_name))
        return task

    def _on_done(self, task: asyncio.Task, sink: str, event_name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Event dispatch cancelled", sink=sink, event_name=event_name)
            return
        error = task.exception()
        if error is not None:
            log_dispatch(logger, sink, event_name, success=False,
                         error=f"{type(error).__name__}: {error}")
        else:
            log_dispatch(logger, sink, event_name, success=True)

    async def drain(self) -> None:
        """Wait for every in-flight sink call. Failures are not raised."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
