"""Tests for the execution lifecycle hooks."""

import pytest

from constants import (
    NODE_FINISHED,
    NODE_STARTED,
    TRACK_MANUAL_NODE_EXEC,
    TRACK_MANUAL_WORKFLOW_EXEC,
    WORKFLOW_CRASHED,
    WORKFLOW_FAILED,
    WORKFLOW_STARTED,
    WORKFLOW_SUCCESS,
)
from models.execution import ExecutionStartData, Run
from services.telemetry import ExecutionStatus, InternalHooks

from conftest import FailingAudit, FakeRoleLookup, make_run, make_workflow, webhook_output

SET_ERROR = {
    "message": "Cannot read property 'id' of undefined",
    "node": {"name": "Webhook", "type": "n8n-nodes-base.webhook"},
}


class TestExecutionFinished:

    async def test_successful_production_run(self, hooks, analytics, audit, graph_generator,
                                             role_lookup, dispatcher, settle):
        outcome = await hooks.on_execution_finished(
            "exec-1", make_workflow(), make_run(mode="webhook", last_node="HTTP Request"),
        )
        await settle(dispatcher)

        assert outcome.status is ExecutionStatus.SUCCESS
        assert [e.event_name for e in audit.workflow] == [WORKFLOW_SUCCESS]
        assert audit.workflow[0].payload["executionId"] == "exec-1"
        assert audit.workflow[0].payload["isManual"] is False

        assert len(analytics.executions) == 1
        properties = analytics.executions[0]
        assert properties["success"] is True
        assert properties["is_manual"] is False
        assert properties["execution_mode"] == "webhook"
        assert properties["version_cli"] == "1.2.3"
        assert "error_message" not in properties

        assert analytics.tracked == []
        assert graph_generator.calls == 0
        assert role_lookup.calls == []

    async def test_failed_manual_node_run(self, hooks, analytics, audit, graph_generator,
                                          dispatcher, settle):
        run = make_run(finished=False, error=SET_ERROR, last_node="Set", destination_node="Set")

        outcome = await hooks.on_execution_finished("exec-2", make_workflow(), run, user_id="user-1")
        await settle(dispatcher)

        assert outcome.status is ExecutionStatus.FAILED
        assert outcome.error_node_name == "Set"
        assert graph_generator.calls == 1

        [node_event] = analytics.events(TRACK_MANUAL_NODE_EXEC)
        assert node_event["node_type"] == "n8n-nodes-base.set"
        assert node_event["node_id"] == "1"
        assert node_event["status"] == "failed"
        assert node_event["execution_status"] == "failed"
        assert node_event["error_node_type"] == "n8n-nodes-base.set"
        assert node_event["error_node_id"] == "1"
        assert node_event["sharing_role"] == "owner"
        assert node_event["webhook_domain"] is None
        assert analytics.events(TRACK_MANUAL_WORKFLOW_EXEC) == []

        [failed] = audit.workflow
        assert failed.event_name == WORKFLOW_FAILED
        assert failed.payload["lastNodeExecuted"] == "Set"
        assert failed.payload["errorNodeType"] == "n8n-nodes-base.set"
        assert failed.payload["errorNodeId"] == "1"
        assert failed.payload["errorMessage"] == SET_ERROR["message"]

        [properties] = analytics.executions
        assert properties["success"] is False
        assert properties["error_node_id"] == "1"
        assert properties["node_graph"]["node_types"][1] == "n8n-nodes-base.set"
        assert "Lead intake" not in properties["node_graph_string"]

    async def test_manual_workflow_run_reports_webhook_domain(self, hooks, analytics,
                                                              graph_generator, dispatcher, settle):
        run = make_run(last_node="HTTP Request",
                       run_data={"Webhook": webhook_output("https://hooks.acme.com")})

        await hooks.on_execution_finished("exec-3", make_workflow(), run, user_id="user-1")
        await settle(dispatcher)

        [event] = analytics.events(TRACK_MANUAL_WORKFLOW_EXEC)
        assert event["webhook_domain"] == "acme.com"
        assert event["status"] == "success"
        assert event["error_message"] is None
        assert event["node_graph_string"]
        assert graph_generator.calls == 1
        assert "node_graph" not in analytics.executions[0]

    async def test_graph_generated_once_with_destination_and_error(self, hooks, graph_generator,
                                                                   dispatcher, settle):
        run = make_run(finished=False, error=SET_ERROR, destination_node="HTTP Request")

        await hooks.on_execution_finished("exec-4", make_workflow(), run, user_id="user-1")
        await settle(dispatcher)

        assert graph_generator.calls == 1

    async def test_canceled_run(self, hooks, analytics, audit, dispatcher, settle):
        run = make_run(finished=False, status="error",
                       error={"message": "The execution was canceled"})

        outcome = await hooks.on_execution_finished("exec-5", make_workflow(), run)
        await settle(dispatcher)

        assert outcome.status is ExecutionStatus.CANCELED
        assert outcome.run_status is ExecutionStatus.CANCELED
        [event] = analytics.events(TRACK_MANUAL_WORKFLOW_EXEC)
        assert event["status"] == "canceled"
        assert event["execution_status"] == "canceled"
        assert audit.workflow[0].event_name == WORKFLOW_FAILED

    async def test_run_without_mode_is_not_manual(self, hooks, analytics, graph_generator,
                                                  role_lookup, dispatcher, settle):
        run = Run.model_validate({"finished": True, "data": {"resultData": {"runData": {}}}})

        outcome = await hooks.on_execution_finished("exec-12", make_workflow(), run, user_id="user-1")
        await settle(dispatcher)

        assert run.mode is None
        assert outcome.is_manual is False
        assert analytics.tracked == []
        assert analytics.executions[0]["is_manual"] is False
        assert graph_generator.calls == 0
        assert role_lookup.calls == []

    async def test_missing_run(self, hooks, analytics, audit, graph_generator, dispatcher, settle):
        outcome = await hooks.on_execution_finished("exec-6", make_workflow(), None)
        await settle(dispatcher)

        assert outcome.status is ExecutionStatus.UNKNOWN
        assert outcome.run_status is ExecutionStatus.UNKNOWN
        assert outcome.is_manual is False
        assert analytics.tracked == []
        assert "execution_mode" not in analytics.executions[0]
        assert audit.workflow[0].event_name == WORKFLOW_FAILED
        assert audit.workflow[0].payload["lastNodeExecuted"] is None
        assert graph_generator.calls == 0

    async def test_unsaved_workflow_is_ignored(self, hooks, analytics, audit, dispatcher, settle):
        outcome = await hooks.on_execution_finished("exec-7", make_workflow(id=None), make_run())

        assert outcome is None
        assert dispatcher.pending == 0
        await settle(dispatcher)
        assert analytics.executions == []
        assert audit.workflow == []

    async def test_audit_failure_does_not_reach_caller(self, analytics, graph_generator,
                                                       status_store, settings, dispatcher, settle):
        hooks = InternalHooks(
            analytics=analytics,
            audit=FailingAudit(),
            graph_generator=graph_generator,
            role_lookup=FakeRoleLookup(),
            status_store=status_store,
            settings=settings,
            dispatcher=dispatcher,
        )

        outcome = await hooks.on_execution_finished(
            "exec-8", make_workflow(), make_run(finished=False, error=SET_ERROR),
        )
        await settle(dispatcher)

        assert outcome.status is ExecutionStatus.FAILED
        assert len(analytics.executions) == 1
        assert len(analytics.events(TRACK_MANUAL_WORKFLOW_EXEC)) == 1

    async def test_unshared_user_has_no_sharing_role(self, analytics, audit, graph_generator,
                                                     status_store, settings, dispatcher, settle):
        hooks = InternalHooks(analytics, audit, graph_generator, FakeRoleLookup(None),
                              status_store, settings, dispatcher=dispatcher)

        await hooks.on_execution_finished("exec-9", make_workflow(), make_run(), user_id="user-2")
        await settle(dispatcher)

        assert analytics.events(TRACK_MANUAL_WORKFLOW_EXEC)[0]["sharing_role"] is None

    async def test_custom_status_determiner_is_trusted(self, analytics, audit, graph_generator,
                                                       role_lookup, status_store, settings):
        hooks = InternalHooks(analytics, audit, graph_generator, role_lookup, status_store,
                              settings, determine_status=lambda run: ExecutionStatus.WAITING)

        outcome = hooks.build_outcome("exec-10", make_workflow(), make_run(mode="trigger"))

        assert outcome.status is ExecutionStatus.WAITING
        assert outcome.run_status is ExecutionStatus.SUCCESS

    async def test_graph_errors_propagate(self, analytics, audit, role_lookup,
                                          status_store, settings):
        class BrokenGenerator:
            def generate(self, workflow, node_types):
                raise ValueError("unsupported workflow")

        hooks = InternalHooks(analytics, audit, BrokenGenerator(), role_lookup,
                              status_store, settings)

        with pytest.raises(ValueError):
            await hooks.on_execution_finished(
                "exec-11", make_workflow(), make_run(finished=False, error=SET_ERROR),
            )


class TestExecutionStarted:

    async def test_started_with_execution_context(self, hooks, audit, status_store,
                                                  dispatcher, settle):
        data = ExecutionStartData(workflow_data=make_workflow(), execution_mode="manual",
                                  user_id="user-1")

        await hooks.on_execution_started("exec-1", data)
        await settle(dispatcher)

        assert status_store.updates == [("exec-1", "running")]
        [event] = audit.workflow
        assert event.event_name == WORKFLOW_STARTED
        assert event.payload == {
            "executionId": "exec-1",
            "userId": "user-1",
            "workflowId": "wf-1",
            "isManual": True,
            "workflowName": "Lead intake",
        }

    async def test_started_from_queue_worker(self, hooks, audit, dispatcher, settle):
        await hooks.on_execution_started("exec-2", make_workflow())
        await settle(dispatcher)

        payload = audit.workflow[0].payload
        assert payload["userId"] is None
        assert payload["isManual"] is False
        assert payload["workflowId"] == "wf-1"

    async def test_node_events(self, hooks, audit, dispatcher, settle):
        workflow = make_workflow()

        await hooks.on_node_started("exec-1", workflow, "Set")
        await hooks.on_node_finished("exec-1", workflow, "Gone")
        await settle(dispatcher)

        assert [e.event_name for e in audit.node] == [NODE_STARTED, NODE_FINISHED]
        assert audit.node[0].payload["nodeType"] == "n8n-nodes-base.set"
        assert audit.node[1].payload["nodeType"] is None


class TestExecutionCrashed:

    async def test_crash_with_metadata(self, hooks, audit, dispatcher, settle):
        metadata = [{"key": "customer", "value": "acme"}, {"key": "region", "value": "eu"}]

        await hooks.on_execution_crashed("exec-1", "manual", make_workflow(), metadata)
        await settle(dispatcher)

        [event] = audit.workflow
        assert event.event_name == WORKFLOW_CRASHED
        assert event.payload["isManual"] is True
        assert event.payload["workflowId"] == "wf-1"
        assert event.payload["metaData"] == {"customer": "acme", "region": "eu"}

    @pytest.mark.parametrize("metadata", [[{"name": "customer"}], [1, 2], None, []])
    async def test_crash_with_unusable_metadata(self, hooks, audit, dispatcher, settle, metadata):
        await hooks.on_execution_crashed("exec-2", "trigger", None, metadata)
        await settle(dispatcher)

        payload = audit.workflow[0].payload
        assert payload["metaData"] is None
        assert payload["workflowId"] is None
        assert payload["isManual"] is False
