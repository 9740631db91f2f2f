"""HTTP analytics client.

Buffers tracking events in memory and posts them in batches. Workflow
executions are not sent one by one: they are aggregated into per-workflow
counters and reported on each pulse.

Transport failures are logged and the batch is dropped. Nothing here is
retried, and nothing raises into the caller.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import httpx
import orjson

from constants import TRACK_INSTANCE_STOPPED, TRACK_WORKFLOW_EXECUTION_COUNT
from core.logging import get_logger
from .sinks import AnalyticsClient, NullAnalyticsClient

if TYPE_CHECKING:
    from core.config import Settings

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def execution_count_key(properties: Dict[str, Any]) -> str:
    """Counter bucket for one execution, e.g. ``manual_success``."""
    origin = "manual" if properties.get("is_manual") else "prod"
    result = "success" if properties.get("success") else "error"
    return f"{origin}_{result}"


class HttpAnalyticsClient:
    """Analytics client posting batched events to ``telemetry_endpoint``."""

    def __init__(self, settings: "Settings",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the client.

        Args:
            settings: Application settings (endpoint, batch size, pulse interval)
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.settings = settings
        self._client = httpx.AsyncClient(
            timeout=settings.telemetry_timeout,
            transport=transport,
        )
        self._queue: List[Dict[str, Any]] = []
        self._execution_counts: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the periodic pulse that reports execution counts."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._pulse_loop())
        logger.info("Analytics pulse started",
                    interval=self.settings.telemetry_flush_interval)

    async def stop(self) -> None:
        """Stop the pulse task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _pulse_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.settings.telemetry_flush_interval)
            try:
                await self.pulse()
            except Exception as e:
                logger.error("Analytics pulse failed", error=str(e))

    # =========================================================================
    # Sink API
    # =========================================================================

    async def identify(self, info: Dict[str, Any]) -> None:
        await self._enqueue({
            "type": "identify",
            "traits": dict(info),
        })

    async def track(self, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        await self._enqueue({
            "type": "track",
            "event": event_name,
            "properties": {
                **(properties or {}),
                "version_cli": self.settings.version_cli,
            },
        })

    async def track_execution(self, properties: Dict[str, Any]) -> None:
        """Count an execution; the counts are sent on the next pulse."""
        workflow_id = properties.get("workflow_id")
        if not workflow_id:
            return

        counters = self._execution_counts.setdefault(workflow_id, {})
        key = execution_count_key(properties)
        counter = counters.setdefault(key, {"count": 0, "first": _now()})
        counter["count"] += 1

        if properties.get("is_manual") and not properties.get("success"):
            counters.setdefault("error_node_types", {"values": []})
            node_type = properties.get("error_node_type")
            if node_type:
                counters["error_node_types"]["values"].append(node_type)

    async def flush_on_shutdown(self) -> None:
        await self.stop()
        await self.track(TRACK_INSTANCE_STOPPED)
        await self.pulse()
        await self._client.aclose()

    # =========================================================================
    # Batching
    # =========================================================================

    @property
    def queued(self) -> int:
        return len(self._queue)

    async def _enqueue(self, message: Dict[str, Any]) -> None:
        self._queue.append({
            **message,
            "instance_id": self.settings.instance_id,
            "timestamp": _now(),
        })
        if len(self._queue) >= self.settings.telemetry_batch_size:
            await self.flush()

    async def pulse(self) -> None:
        """Turn execution counters into events and flush everything."""
        counts, self._execution_counts = self._execution_counts, {}
        for workflow_id, counters in counts.items():
            await self.track(TRACK_WORKFLOW_EXECUTION_COUNT, {
                "workflow_id": workflow_id,
                **counters,
            })
        await self.flush()

    async def flush(self) -> bool:
        """Post the current batch. The batch is dropped on failure.

        Returns:
            True if the batch was accepted (or there was nothing to send)
        """
        if not self._queue or not self.settings.telemetry_endpoint:
            self._queue = []
            return True

        batch, self._queue = self._queue, []
        try:
            response = await self._client.post(
                self.settings.telemetry_endpoint,
                content=orjson.dumps({"batch": batch}),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Analytics batch dropped",
                           size=len(batch), error=str(e))
            return False

        logger.debug("Analytics batch sent", size=len(batch))
        return True


def create_analytics_client(settings: "Settings") -> "AnalyticsClient":
    """Factory function to create the appropriate analytics client.

    Returns:
        HttpAnalyticsClient when diagnostics are enabled and an endpoint is
        configured, NullAnalyticsClient otherwise
    """
    if settings.analytics_enabled:
        logger.info("Analytics enabled", endpoint=settings.telemetry_endpoint)
        return HttpAnalyticsClient(settings)
    logger.debug("Analytics disabled")
    return NullAnalyticsClient()
