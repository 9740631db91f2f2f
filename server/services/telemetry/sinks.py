"""Collaborator protocols and their no-op implementations.

The pipeline only depends on these protocols; concrete analytics and audit
transports are swapped in through the container.

Usage:
    from services.telemetry.sinks import NullAnalyticsClient, LoggingAuditSink

    analytics = HttpAnalyticsClient(settings) if settings.analytics_enabled else NullAnalyticsClient()
    audit = LoggingAuditSink() if settings.audit_enabled else NullAuditSink()
"""

from typing import Any, Dict, Optional, Protocol

from core.logging import get_logger
from .models import AuditEvent

logger = get_logger(__name__)


class AnalyticsClient(Protocol):
    """Analytics sink: persists, batches and transmits tracking events."""

    async def start(self) -> None:
        ...

    async def identify(self, info: Dict[str, Any]) -> None:
        ...

    async def track(self, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        ...

    async def track_execution(self, properties: Dict[str, Any]) -> None:
        ...

    async def flush_on_shutdown(self) -> None:
        """Resolve once buffered events are drained."""
        ...


class AuditSink(Protocol):
    """Audit / event-bus transport for structured security events."""

    async def send_audit_event(self, event: AuditEvent) -> None:
        ...

    async def send_workflow_event(self, event: AuditEvent) -> None:
        ...

    async def send_node_event(self, event: AuditEvent) -> None:
        ...


class RoleLookup(Protocol):
    """Resolves a user's role on a workflow, e.g. "owner" or "editor"."""

    async def find_role(self, user_id: str, workflow_id: str) -> Optional[str]:
        ...


class ExecutionStatusStore(Protocol):
    """Execution-status persistence."""

    async def update_status(self, execution_id: str, status: str) -> None:
        ...


class NullAnalyticsClient:
    """No-op analytics client when diagnostics are disabled.

    This follows the Null Object pattern - all operations succeed silently.
    """

    async def start(self) -> None:
        pass

    async def identify(self, info: Dict[str, Any]) -> None:
        pass

    async def track(self, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        pass

    async def track_execution(self, properties: Dict[str, Any]) -> None:
        pass

    async def flush_on_shutdown(self) -> None:
        pass


class NullAuditSink:
    """No-op audit sink when the audit log is disabled."""

    async def send_audit_event(self, event: AuditEvent) -> None:
        pass

    async def send_workflow_event(self, event: AuditEvent) -> None:
        pass

    async def send_node_event(self, event: AuditEvent) -> None:
        pass


class NullRoleLookup:
    """Role lookup for deployments without sharing: nobody has a role."""

    async def find_role(self, user_id: str, workflow_id: str) -> Optional[str]:
        return None


class NullExecutionStatusStore:
    """Status store for deployments that do not persist executions."""

    async def update_status(self, execution_id: str, status: str) -> None:
        logger.debug("Execution status not persisted",
                     execution_id=execution_id, status=status)


class LoggingAuditSink:
    """Audit sink that writes every event as a structured log record.

    Records go to a dedicated logger so they can be routed to their own
    handler, separate from application logs.
    """

    def __init__(self, logger_name: str = "audit"):
        self._logger = get_logger(logger_name)

    async def send_audit_event(self, event: AuditEvent) -> None:
        self._emit("audit", event)

    async def send_workflow_event(self, event: AuditEvent) -> None:
        self._emit("workflow", event)

    async def send_node_event(self, event: AuditEvent) -> None:
        self._emit("node", event)

    def _emit(self, category: str, event: AuditEvent) -> None:
        self._logger.info(event.event_name, category=category, payload=event.payload)


def create_audit_sink(enabled: bool = True, logger_name: str = "audit") -> AuditSink:
    """Factory function to create the appropriate audit sink.

    Args:
        enabled: Whether audit events should be recorded
        logger_name: Logger that receives audit records

    Returns:
        LoggingAuditSink if enabled, NullAuditSink otherwise
    """
    if enabled:
        logger.info("Audit log enabled", logger_name=logger_name)
        return LoggingAuditSink(logger_name)
    logger.debug("Audit log disabled")
    return NullAuditSink()
