"""Event pipeline state models.

Outcomes, graphs and events are immutable once built. They live for the
duration of one dispatch and are never shared between executions.
"""

import orjson
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from models.auth import User


class ExecutionStatus(str, Enum):
    """Final execution states reported to the sinks.

    UNKNOWN is the fallback whenever no run result is available or the
    status cannot be determined.
    """
    NEW = "new"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CRASHED = "crashed"
    CANCELED = "canceled"
    WAITING = "waiting"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ExecutionStatus":
        """Map a raw status string onto the enum, UNKNOWN when unrecognised."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ExecutionMode(str, Enum):
    """How an execution was triggered."""
    MANUAL = "manual"
    TRIGGER = "trigger"
    WEBHOOK = "webhook"
    RETRY = "retry"
    INTERNAL = "internal"
    CLI = "cli"
    ERROR = "error"


class SharingRole(str, Enum):
    """Relationship of a user to a workflow."""
    OWNER = "owner"
    SHAREE = "sharee"
    NONE = "none"

    @property
    def telemetry_value(self) -> Optional[str]:
        """Value sent to analytics; NONE is omitted as null."""
        return None if self is SharingRole.NONE else self.value


@dataclass(frozen=True)
class NodeGraph:
    """Privacy-safe structural graph of a workflow.

    ``nodes`` maps a node index id to its descriptor, in workflow order.
    ``name_indices`` maps node names to those ids and never leaves the
    process; only ``to_dict()`` is serialized.
    """
    nodes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    connections: List[Dict[str, str]] = field(default_factory=list)
    notes: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    node_types: List[str] = field(default_factory=list)
    name_indices: Dict[str, str] = field(default_factory=dict)
    webhook_node_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-serializable analytics shape."""
        return {
            "node_types": list(self.node_types),
            "node_connections": [dict(c) for c in self.connections],
            "nodes": {k: dict(v) for k, v in self.nodes.items()},
            "notes": {k: dict(v) for k, v in self.notes.items()},
        }

    def to_json(self) -> str:
        """Compact JSON string of ``to_dict()``."""
        return orjson.dumps(self.to_dict()).decode()

    @property
    def notes_count(self) -> int:
        return len(self.notes)

    @property
    def overlapping_notes_count(self) -> int:
        return sum(1 for note in self.notes.values() if note.get("overlapping"))


@dataclass(frozen=True)
class StatusClassification:
    """Result of classifying a run.

    ``status`` is the final execution status; ``run_status`` is the run's own
    status field after the cancellation override has been applied.
    """
    status: ExecutionStatus
    run_status: ExecutionStatus


@dataclass(frozen=True)
class ErrorAttribution:
    """Which node caused a failure, as far as it can be told."""
    error_message: Optional[str] = None
    error_node_type: Optional[str] = None
    error_node_name: Optional[str] = None


@dataclass(frozen=True)
class ExecutionOutcome:
    """Classified result of one workflow execution.

    Built once per execution-completion notification and discarded after
    dispatch.
    """
    execution_id: str
    workflow_id: str
    workflow_name: str
    mode: Optional[str]
    finished: bool
    status: ExecutionStatus
    run_status: ExecutionStatus
    error_message: Optional[str] = None
    error_node_type: Optional[str] = None
    error_node_name: Optional[str] = None
    last_node_executed: Optional[str] = None
    started_destination_node: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_manual(self) -> bool:
        return self.mode == ExecutionMode.MANUAL.value

    @property
    def has_error(self) -> bool:
        return self.error_message is not None


@dataclass(frozen=True)
class TelemetryEvent:
    """Analytics record. Property keys are snake_case."""
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditEvent:
    """Structured event for the audit / event-bus transport."""
    event_name: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"eventName": self.event_name, "payload": dict(self.payload)}


def user_to_payload(user: User) -> Dict[str, Any]:
    """Actor identity block included in every audit payload with a known user."""
    return {
        "userId": user.id,
        "_email": user.email,
        "_firstName": user.first_name,
        "_lastName": user.last_name,
        "globalRole": user.global_role,
    }
