"""Execution outcome event pipeline.

Turns platform lifecycle events into two independent, best-effort streams:
- Anonymized analytics events (product telemetry)
- Audit events (compliance and security log)

Finished executions are classified, failures attributed to a node, manual
runs enriched with a node graph, webhook caller domain and sharing role,
and everything is dispatched fire-and-forget.
"""

from .models import (
    ExecutionStatus,
    ExecutionMode,
    SharingRole,
    NodeGraph,
    StatusClassification,
    ErrorAttribution,
    ExecutionOutcome,
    TelemetryEvent,
    AuditEvent,
    user_to_payload,
)
from .status import (
    classify_execution_status,
    determine_final_execution_status,
    is_canceled,
)
from .errors import attribute_error
from .graph import (
    GraphGenerator,
    DefaultGraphGenerator,
    NodeGraphCache,
)
from .webhook import extract_webhook_domain, registrable_domain
from .roles import resolve_sharing_role
from .sinks import (
    AnalyticsClient,
    AuditSink,
    RoleLookup,
    ExecutionStatusStore,
    NullAnalyticsClient,
    NullAuditSink,
    NullRoleLookup,
    NullExecutionStatusStore,
    LoggingAuditSink,
    create_audit_sink,
)
from .analytics import HttpAnalyticsClient, create_analytics_client
from .dispatcher import EventDispatcher
from .shutdown import ShutdownCoordinator
from .hooks import InternalHooks

__all__ = [
    # Models
    "ExecutionStatus",
    "ExecutionMode",
    "SharingRole",
    "NodeGraph",
    "StatusClassification",
    "ErrorAttribution",
    "ExecutionOutcome",
    "TelemetryEvent",
    "AuditEvent",
    "user_to_payload",
    # Classification
    "classify_execution_status",
    "determine_final_execution_status",
    "is_canceled",
    "attribute_error",
    # Graph
    "GraphGenerator",
    "DefaultGraphGenerator",
    "NodeGraphCache",
    # Webhook
    "extract_webhook_domain",
    "registrable_domain",
    # Roles
    "resolve_sharing_role",
    # Sinks
    "AnalyticsClient",
    "AuditSink",
    "RoleLookup",
    "ExecutionStatusStore",
    "NullAnalyticsClient",
    "NullAuditSink",
    "NullRoleLookup",
    "NullExecutionStatusStore",
    "LoggingAuditSink",
    "create_audit_sink",
    "HttpAnalyticsClient",
    "create_analytics_client",
    # Dispatch
    "EventDispatcher",
    "ShutdownCoordinator",
    "InternalHooks",
]
