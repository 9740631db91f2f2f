"""
Shared fixtures for the event pipeline tests.

Features:
 - Recording fakes for the analytics and audit sinks
 - Counting graph generator and role lookup doubles
 - Builders for workflow snapshots and run results in engine (camelCase) shape
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from core.config import Settings
from models.auth import User
from models.execution import Run
from models.workflow import WorkflowSnapshot
from services.telemetry import (
    AuditEvent,
    DefaultGraphGenerator,
    EventDispatcher,
    InternalHooks,
    NodeGraph,
)


# -----------------------------------------------------------------------------
# Collaborator doubles
# -----------------------------------------------------------------------------
class RecordingAnalytics:
    """Analytics client that remembers every call."""

    def __init__(self):
        self.started = False
        self.identified: List[Dict[str, Any]] = []
        self.tracked: List[tuple] = []
        self.executions: List[Dict[str, Any]] = []
        self.flushed = False

    async def start(self) -> None:
        self.started = True

    async def identify(self, info):
        self.identified.append(info)

    async def track(self, event_name, properties=None):
        self.tracked.append((event_name, properties or {}))

    async def track_execution(self, properties):
        self.executions.append(properties)

    async def flush_on_shutdown(self):
        self.flushed = True

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [props for event_name, props in self.tracked if event_name == name]


class RecordingAudit:
    """Audit sink that sorts events by channel."""

    def __init__(self):
        self.audit: List[AuditEvent] = []
        self.workflow: List[AuditEvent] = []
        self.node: List[AuditEvent] = []

    async def send_audit_event(self, event):
        self.audit.append(event)

    async def send_workflow_event(self, event):
        self.workflow.append(event)

    async def send_node_event(self, event):
        self.node.append(event)


class FailingAudit:
    """Audit sink whose transport is down."""

    async def send_audit_event(self, event):
        raise ConnectionError("audit transport unreachable")

    async def send_workflow_event(self, event):
        raise ConnectionError("audit transport unreachable")

    async def send_node_event(self, event):
        raise ConnectionError("audit transport unreachable")


class CountingGraphGenerator:
    """Default generator that counts how often it runs."""

    def __init__(self):
        self.calls = 0
        self._inner = DefaultGraphGenerator()

    def generate(self, workflow, node_types) -> NodeGraph:
        self.calls += 1
        return self._inner.generate(workflow, node_types)


class FakeRoleLookup:
    def __init__(self, role: Optional[str] = None):
        self.role = role
        self.calls: List[tuple] = []

    async def find_role(self, user_id, workflow_id):
        self.calls.append((user_id, workflow_id))
        return self.role


class RecordingStatusStore:
    def __init__(self):
        self.updates: List[tuple] = []

    async def update_status(self, execution_id, status):
        self.updates.append((execution_id, status))


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------
def make_workflow(nodes: Optional[List[Dict[str, Any]]] = None, **extra) -> WorkflowSnapshot:
    data = {
        "id": "wf-1",
        "name": "Lead intake",
        "nodes": nodes if nodes is not None else [
            {"name": "Webhook", "type": "n8n-nodes-base.webhook", "position": [0, 0]},
            {"name": "Set", "type": "n8n-nodes-base.set", "position": [300, 0]},
            {"name": "HTTP Request", "type": "n8n-nodes-base.httpRequest", "position": [600, 0]},
        ],
        "connections": {
            "Webhook": {"main": [[{"node": "Set", "type": "main", "index": 0}]]},
            "Set": {"main": [[{"node": "HTTP Request", "type": "main", "index": 0}]]},
        },
    }
    data.update(extra)
    return WorkflowSnapshot.model_validate(data)


def make_run(finished: bool = True, mode: str = "manual", status: Optional[str] = None,
             error: Optional[Dict[str, Any]] = None, last_node: Optional[str] = None,
             run_data: Optional[Dict[str, Any]] = None, destination_node: Optional[str] = None,
             **extra) -> Run:
    result_data: Dict[str, Any] = {"runData": run_data or {}}
    if error is not None:
        result_data["error"] = error
    if last_node is not None:
        result_data["lastNodeExecuted"] = last_node
    data: Dict[str, Any] = {"resultData": result_data}
    if destination_node is not None:
        data["startData"] = {"destinationNode": destination_node}
    return Run.model_validate({
        "finished": finished,
        "mode": mode,
        "status": status or ("success" if finished else "failed"),
        "data": data,
        **extra,
    })


def webhook_output(origin: Optional[str]) -> List[Dict[str, Any]]:
    """Task runs of a webhook node that received a request."""
    headers = {} if origin is None else {"origin": origin}
    return [{"data": {"main": [[{"json": {"headers": headers, "body": {}}}]]}}]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def settings():
    return Settings(version_cli="1.2.3", instance_id="test-instance", shutdown_timeout_ms=50)


@pytest.fixture
def analytics():
    return RecordingAnalytics()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def graph_generator():
    return CountingGraphGenerator()


@pytest.fixture
def role_lookup():
    return FakeRoleLookup(role="owner")


@pytest.fixture
def status_store():
    return RecordingStatusStore()


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def hooks(analytics, audit, graph_generator, role_lookup, status_store, settings, dispatcher):
    return InternalHooks(
        analytics=analytics,
        audit=audit,
        graph_generator=graph_generator,
        role_lookup=role_lookup,
        status_store=status_store,
        settings=settings,
        dispatcher=dispatcher,
    )


@pytest.fixture
def user():
    return User.model_validate({
        "id": "user-1",
        "email": "ada@example.com",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "globalRole": "global:owner",
    })


@pytest.fixture
def settle():
    """Let detached sink tasks run to completion."""
    async def _settle(dispatcher: EventDispatcher):
        await dispatcher.drain()
        await asyncio.sleep(0)
    return _settle
