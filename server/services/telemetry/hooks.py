"""Internal hooks - turns platform lifecycle events into analytics and audit events.

Every hook is called fire-and-forget by the workflow engine or the API
layer. Hooks reshape their input and hand it to the dispatcher; they never
wait for a sink, and a failing sink never reaches the caller.

The only hook with real logic is ``on_execution_finished``:
    classify status -> attribute error -> (manual) node graph, webhook
    domain, sharing role -> dispatch workflow event + analytics events
"""

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union, TYPE_CHECKING

from constants import (
    AUDIT_WORKFLOW_CREATED,
    AUDIT_WORKFLOW_DELETED,
    AUDIT_WORKFLOW_UPDATED,
    AUDIT_USER_DELETED,
    AUDIT_USER_INVITED,
    AUDIT_USER_UPDATED,
    AUDIT_USER_SIGNED_UP,
    AUDIT_USER_LOGIN_SUCCESS,
    AUDIT_USER_LOGIN_FAILED,
    AUDIT_CREDENTIALS_CREATED,
    AUDIT_CREDENTIALS_SHARED,
    AUDIT_PACKAGE_INSTALLED,
    AUDIT_PACKAGE_UPDATED,
    AUDIT_PACKAGE_DELETED,
    WORKFLOW_STARTED,
    WORKFLOW_SUCCESS,
    WORKFLOW_FAILED,
    WORKFLOW_CRASHED,
    NODE_STARTED,
    NODE_FINISHED,
    TRACK_INSTANCE_STARTED,
    TRACK_SESSION_STARTED,
    TRACK_PERSONALIZATION_SURVEY,
    TRACK_WORKFLOW_CREATED,
    TRACK_WORKFLOW_DELETED,
    TRACK_WORKFLOW_SAVED,
    TRACK_WORKFLOW_SHARING_UPDATED,
    TRACK_MANUAL_NODE_EXEC,
    TRACK_MANUAL_WORKFLOW_EXEC,
    TRACK_USER_DELETED,
    TRACK_USER_INVITED,
    TRACK_USER_UPDATED,
    TRACK_USER_SIGNED_UP,
    TRACK_CREDENTIALS_CREATED,
    TRACK_CREDENTIALS_SHARED,
    TRACK_PACKAGE_INSTALLED,
    TRACK_PACKAGE_UPDATED,
    TRACK_PACKAGE_DELETED,
    TRACK_FIRST_PRODUCTION_SUCCESS,
    TRACK_FIRST_DATA_LOAD,
)
from core.logging import get_logger
from models.auth import User
from models.execution import Run, ExecutionStartData
from models.workflow import WorkflowSnapshot
from .dispatcher import EventDispatcher
from .errors import attribute_error
from .graph import GraphGenerator, NodeGraphCache, NodeTypeRegistry
from .models import (
    AuditEvent,
    ExecutionMode,
    ExecutionOutcome,
    ExecutionStatus,
    TelemetryEvent,
    user_to_payload,
)
from .roles import resolve_sharing_role
from .shutdown import ShutdownCoordinator
from .sinks import AnalyticsClient, AuditSink, ExecutionStatusStore, RoleLookup
from .status import StatusDeterminer, classify_execution_status, determine_final_execution_status
from .webhook import extract_webhook_domain

if TYPE_CHECKING:
    from core.config import Settings

logger = get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s\-]+")


def snake_case(value: str) -> str:
    """``companySize`` -> ``company_size``."""
    return _SEPARATORS.sub("_", _CAMEL_BOUNDARY.sub(r"\1_\2", value)).lower()


def reduce_execution_metadata(rows: Iterable[Any]) -> Dict[str, Any]:
    """Collapse ``[{"key": k, "value": v}, ...]`` rows into ``{k: v}``."""
    return {row["key"]: row["value"] for row in rows}


class InternalHooks:
    """Lifecycle hooks emitting analytics and audit events.

    Collaborators are injected as protocols so tests can substitute
    recording fakes for every sink and lookup.
    """

    def __init__(
        self,
        analytics: AnalyticsClient,
        audit: AuditSink,
        graph_generator: GraphGenerator,
        role_lookup: RoleLookup,
        status_store: ExecutionStatusStore,
        settings: "Settings",
        node_types: Optional[NodeTypeRegistry] = None,
        dispatcher: Optional[EventDispatcher] = None,
        determine_status: StatusDeterminer = determine_final_execution_status,
    ):
        self.analytics = analytics
        self.audit = audit
        self.graph_generator = graph_generator
        self.role_lookup = role_lookup
        self.status_store = status_store
        self.settings = settings
        self.node_types: NodeTypeRegistry = node_types or {}
        self.dispatcher = dispatcher or EventDispatcher()
        self.determine_status = determine_status
        self.shutdown = ShutdownCoordinator(analytics, timeout=settings.shutdown_timeout)

    # =========================================================================
    # Dispatch helpers
    # =========================================================================

    def _track(self, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        event = TelemetryEvent(event_name, properties or {})
        self.dispatcher.dispatch("analytics", event.name, self.analytics.track,
                                 event.name, event.properties)

    def _track_execution(self, properties: Dict[str, Any]) -> None:
        self.dispatcher.dispatch("analytics", "workflow execution",
                                 self.analytics.track_execution, properties)

    def _audit(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.dispatcher.dispatch("audit", event_name, self.audit.send_audit_event,
                                 AuditEvent(event_name, payload))

    def _workflow_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.dispatcher.dispatch("audit", event_name, self.audit.send_workflow_event,
                                 AuditEvent(event_name, payload))

    def _node_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.dispatcher.dispatch("audit", event_name, self.audit.send_node_event,
                                 AuditEvent(event_name, payload))

    # =========================================================================
    # Instance lifecycle
    # =========================================================================

    async def init(self) -> None:
        await self.analytics.start()

    async def on_server_started(self, diagnostic_info: Dict[str, Any],
                                earliest_workflow_created_at: Optional[datetime] = None) -> None:
        info = {
            "version_cli": diagnostic_info.get("versionCli", self.settings.version_cli),
            "db_type": diagnostic_info.get("databaseType"),
            "n8n_version_notifications_enabled": diagnostic_info.get("notificationsEnabled"),
            "n8n_disable_production_main_process": diagnostic_info.get("disableProductionWebhooksOnMainProcess"),
            "system_info": diagnostic_info.get("systemInfo"),
            "execution_variables": diagnostic_info.get("executionVariables"),
            "n8n_deployment_type": diagnostic_info.get("deploymentType", self.settings.deployment_type),
            "n8n_binary_data_mode": diagnostic_info.get("binaryDataMode"),
            "smtp_set_up": diagnostic_info.get("smtpSetUp"),
            "ldap_allowed": diagnostic_info.get("ldapAllowed"),
            "saml_enabled": diagnostic_info.get("samlEnabled"),
            "license_plan_name": diagnostic_info.get("licensePlanName"),
            "license_tenant_id": diagnostic_info.get("licenseTenantId"),
        }

        self.dispatcher.dispatch("analytics", "identify", self.analytics.identify, info)
        self._track(TRACK_INSTANCE_STARTED, {
            **info,
            "earliest_workflow_created": (
                earliest_workflow_created_at.isoformat() if earliest_workflow_created_at else None
            ),
        })

    async def on_stop(self) -> bool:
        """Flush analytics within the shutdown bound. Never raises."""
        return await self.shutdown.run()

    async def on_frontend_settings_api(self, session_id: Optional[str] = None) -> None:
        self._track(TRACK_SESSION_STARTED, {"session_id": session_id})

    async def on_personalization_survey_submitted(self, user_id: str,
                                                  answers: Dict[str, Any]) -> None:
        properties: Dict[str, Any] = {"user_id": user_id}
        for key, value in answers.items():
            properties[snake_case(key)] = value
        self._track(TRACK_PERSONALIZATION_SURVEY, properties)

    # =========================================================================
    # Workflow definition
    # =========================================================================

    async def on_workflow_created(self, user: User, workflow: WorkflowSnapshot,
                                  public_api: bool) -> None:
        node_graph = NodeGraphCache(self.graph_generator, workflow, self.node_types).get()
        self._audit(AUDIT_WORKFLOW_CREATED, {
            **user_to_payload(user),
            "workflowId": workflow.id,
            "workflowName": workflow.name,
        })
        self._track(TRACK_WORKFLOW_CREATED, {
            "user_id": user.id,
            "workflow_id": workflow.id,
            "node_graph_string": node_graph.to_json(),
            "public_api": public_api,
        })

    async def on_workflow_deleted(self, user: User, workflow_id: str, public_api: bool) -> None:
        self._audit(AUDIT_WORKFLOW_DELETED, {
            **user_to_payload(user),
            "workflowId": workflow_id,
        })
        self._track(TRACK_WORKFLOW_DELETED, {
            "user_id": user.id,
            "workflow_id": workflow_id,
            "public_api": public_api,
        })

    async def on_workflow_saved(self, user: User, workflow: WorkflowSnapshot,
                                public_api: bool) -> None:
        node_graph = NodeGraphCache(self.graph_generator, workflow, self.node_types).get()
        notes_count = node_graph.notes_count
        overlapping_count = node_graph.overlapping_notes_count
        role = await resolve_sharing_role(self.role_lookup, user.id, workflow.id)

        self._audit(AUDIT_WORKFLOW_UPDATED, {
            **user_to_payload(user),
            "workflowId": workflow.id,
            "workflowName": workflow.name,
        })
        self._track(TRACK_WORKFLOW_SAVED, {
            "user_id": user.id,
            "workflow_id": workflow.id,
            "node_graph_string": node_graph.to_json(),
            "notes_count_overlapping": overlapping_count,
            "notes_count_non_overlapping": notes_count - overlapping_count,
            "version_cli": self.settings.version_cli,
            "num_tags": len(workflow.tags),
            "public_api": public_api,
            "sharing_role": role.telemetry_value,
        })

    async def on_workflow_sharing_update(self, workflow_id: str, user_id: str,
                                         user_list: List[str]) -> None:
        self._track(TRACK_WORKFLOW_SHARING_UPDATED, {
            "workflow_id": workflow_id,
            "user_id_sharer": user_id,
            "user_id_list": list(user_list),
        })

    # =========================================================================
    # Execution lifecycle
    # =========================================================================

    async def on_execution_started(self, execution_id: str,
                                   data: Union[ExecutionStartData, WorkflowSnapshot]) -> None:
        # Queue-mode workers only have the workflow, not the execution context
        if isinstance(data, ExecutionStartData):
            payload = {
                "executionId": execution_id,
                "userId": data.user_id,
                "workflowId": data.workflow_data.id,
                "isManual": data.execution_mode == ExecutionMode.MANUAL.value,
                "workflowName": data.workflow_data.name,
            }
        else:
            payload = {
                "executionId": execution_id,
                "userId": None,
                "workflowId": data.id,
                "isManual": False,
                "workflowName": data.name,
            }

        self.dispatcher.dispatch("status_store", "running", self.status_store.update_status,
                                 execution_id, ExecutionStatus.RUNNING.value)
        self._workflow_event(WORKFLOW_STARTED, payload)

    async def on_node_started(self, execution_id: str, workflow: WorkflowSnapshot,
                              node_name: str) -> None:
        self._node_event(NODE_STARTED, self._node_payload(execution_id, workflow, node_name))

    async def on_node_finished(self, execution_id: str, workflow: WorkflowSnapshot,
                               node_name: str) -> None:
        self._node_event(NODE_FINISHED, self._node_payload(execution_id, workflow, node_name))

    @staticmethod
    def _node_payload(execution_id: str, workflow: WorkflowSnapshot,
                      node_name: str) -> Dict[str, Any]:
        node = workflow.get_node(node_name)
        return {
            "executionId": execution_id,
            "nodeName": node_name,
            "workflowId": workflow.id,
            "workflowName": workflow.name,
            "nodeType": node.type if node else None,
        }

    async def on_execution_crashed(self, execution_id: str, mode: str,
                                   workflow: Optional[WorkflowSnapshot] = None,
                                   execution_metadata: Optional[Iterable[Any]] = None) -> None:
        metadata = None
        if execution_metadata:
            try:
                metadata = reduce_execution_metadata(execution_metadata)
            except (KeyError, TypeError) as e:
                logger.debug("Ignoring malformed execution metadata",
                             execution_id=execution_id, error=str(e))

        self._workflow_event(WORKFLOW_CRASHED, {
            "executionId": execution_id,
            "isManual": mode == ExecutionMode.MANUAL.value,
            "workflowId": workflow.id if workflow else None,
            "workflowName": workflow.name if workflow else None,
            "metaData": metadata,
        })

    def build_outcome(self, execution_id: str, workflow: WorkflowSnapshot,
                      run: Optional[Run] = None,
                      user_id: Optional[str] = None) -> ExecutionOutcome:
        """Classify a finished run into an ExecutionOutcome."""
        classification = classify_execution_status(run, self.determine_status)
        finished = bool(run and run.finished)
        attribution = attribute_error(run, workflow, finished)
        result_data = run.data.result_data if run else None

        return ExecutionOutcome(
            execution_id=execution_id,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            mode=run.mode if run else None,
            finished=finished,
            status=classification.status,
            run_status=classification.run_status,
            error_message=attribution.error_message,
            error_node_type=attribution.error_node_type,
            error_node_name=attribution.error_node_name,
            last_node_executed=result_data.last_node_executed if result_data else None,
            started_destination_node=run.destination_node if run else None,
            user_id=user_id,
            metadata=result_data.metadata if result_data else None,
        )

    async def on_execution_finished(self, execution_id: str, workflow: WorkflowSnapshot,
                                    run: Optional[Run] = None,
                                    user_id: Optional[str] = None) -> Optional[ExecutionOutcome]:
        """Report a finished execution.

        Node graph generation errors propagate out of this call; sink errors
        never do.

        Returns:
            The classified outcome, or None for unsaved workflows
        """
        if not workflow.id:
            return None

        outcome = self.build_outcome(execution_id, workflow, run, user_id)
        graph = NodeGraphCache(self.graph_generator, workflow, self.node_types)

        properties: Dict[str, Any] = {
            "workflow_id": workflow.id,
            "is_manual": outcome.is_manual,
            "version_cli": self.settings.version_cli,
            "success": outcome.finished,
        }
        if user_id:
            properties["user_id"] = user_id

        if run is not None:
            properties["execution_mode"] = run.mode

            if outcome.has_error:
                properties["error_message"] = outcome.error_message
                properties["error_node_type"] = outcome.error_node_type

                if outcome.is_manual:
                    node_graph = graph.get()
                    properties["node_graph"] = node_graph.to_dict()
                    properties["node_graph_string"] = node_graph.to_json()
                    if outcome.error_node_name:
                        properties["error_node_id"] = node_graph.name_indices.get(outcome.error_node_name)

            if outcome.is_manual:
                await self._track_manual_execution(outcome, workflow, run, graph, properties)

        shared_payload = {
            "executionId": execution_id,
            "success": outcome.finished,
            "userId": user_id,
            "workflowId": workflow.id,
            "isManual": outcome.is_manual,
            "workflowName": workflow.name,
            "metaData": outcome.metadata,
        }
        if outcome.finished:
            self._workflow_event(WORKFLOW_SUCCESS, shared_payload)
        else:
            error_node_id = properties.get("error_node_id")
            self._workflow_event(WORKFLOW_FAILED, {
                **shared_payload,
                "lastNodeExecuted": outcome.last_node_executed,
                "errorNodeType": outcome.error_node_type,
                "errorNodeId": str(error_node_id) if error_node_id is not None else None,
                "errorMessage": outcome.error_message,
            })

        self._track_execution(properties)
        logger.debug("Execution outcome dispatched",
                     execution_id=execution_id,
                     status=outcome.status.value,
                     is_manual=outcome.is_manual)
        return outcome

    async def _track_manual_execution(self, outcome: ExecutionOutcome,
                                      workflow: WorkflowSnapshot, run: Run,
                                      graph: NodeGraphCache,
                                      properties: Dict[str, Any]) -> None:
        role = await resolve_sharing_role(self.role_lookup, outcome.user_id, workflow.id)
        node_graph = graph.get()

        manual_properties: Dict[str, Any] = {
            "user_id": outcome.user_id,
            "workflow_id": workflow.id,
            "status": outcome.status.value,
            "execution_status": outcome.run_status.value,
            "error_message": properties.get("error_message"),
            "error_node_type": properties.get("error_node_type"),
            "node_graph_string": properties.get("node_graph_string") or node_graph.to_json(),
            "error_node_id": properties.get("error_node_id"),
            "webhook_domain": None,
            "sharing_role": role.telemetry_value,
        }

        destination = outcome.started_destination_node
        if destination:
            node = workflow.get_node(destination)
            self._track(TRACK_MANUAL_NODE_EXEC, {
                **manual_properties,
                "node_type": node.type if node else None,
                "node_id": node_graph.name_indices.get(destination),
            })
        else:
            manual_properties["webhook_domain"] = extract_webhook_domain(
                node_graph.webhook_node_names,
                run.data.result_data.run_data,
            )
            self._track(TRACK_MANUAL_WORKFLOW_EXEC, manual_properties)

    # =========================================================================
    # Users
    # =========================================================================

    async def on_user_deletion(self, user: User, telemetry_data: Dict[str, Any],
                               public_api: bool) -> None:
        self._audit(AUDIT_USER_DELETED, user_to_payload(user))
        self._track(TRACK_USER_DELETED, {
            **telemetry_data,
            "user_id": user.id,
            "public_api": public_api,
        })

    async def on_user_invite(self, user: User, target_user_id: List[str],
                             public_api: bool, email_sent: bool) -> None:
        self._audit(AUDIT_USER_INVITED, {
            **user_to_payload(user),
            "targetUserId": list(target_user_id),
        })
        self._track(TRACK_USER_INVITED, {
            "user_id": user.id,
            "target_user_id": list(target_user_id),
            "public_api": public_api,
            "email_sent": email_sent,
        })

    async def on_user_update(self, user: User, fields_changed: List[str]) -> None:
        self._audit(AUDIT_USER_UPDATED, {
            **user_to_payload(user),
            "fieldsChanged": list(fields_changed),
        })
        self._track(TRACK_USER_UPDATED, {
            "user_id": user.id,
            "fields_changed": list(fields_changed),
        })

    async def on_user_signup(self, user: User, user_type: str,
                             was_disabled_ldap_user: bool = False) -> None:
        self._audit(AUDIT_USER_SIGNED_UP, user_to_payload(user))
        self._track(TRACK_USER_SIGNED_UP, {
            "user_id": user.id,
            "user_type": user_type,
            "was_disabled_ldap_user": was_disabled_ldap_user,
        })

    async def on_user_login_success(self, user: User, authentication_method: str) -> None:
        self._audit(AUDIT_USER_LOGIN_SUCCESS, {
            "authenticationMethod": authentication_method,
            **user_to_payload(user),
        })

    async def on_user_login_failed(self, user: str, authentication_method: str,
                                   reason: Optional[str] = None) -> None:
        # No User object: the login attempt never resolved to an account
        self._audit(AUDIT_USER_LOGIN_FAILED, {
            "authenticationMethod": authentication_method,
            "user": user,
            "reason": reason,
        })

    # =========================================================================
    # Credentials
    # =========================================================================

    async def on_user_created_credentials(self, user: User, credential_name: str,
                                          credential_type: str, credential_id: str,
                                          public_api: bool) -> None:
        self._audit(AUDIT_CREDENTIALS_CREATED, {
            **user_to_payload(user),
            "credentialName": credential_name,
            "credentialType": credential_type,
            "credentialId": credential_id,
        })
        self._track(TRACK_CREDENTIALS_CREATED, {
            "user_id": user.id,
            "credential_type": credential_type,
            "credential_id": credential_id,
            "instance_id": self.settings.instance_id,
        })

    async def on_user_shared_credentials(self, user: User, credential_name: str,
                                         credential_type: str, credential_id: str,
                                         user_id_sharer: str,
                                         user_ids_sharees_added: List[str],
                                         sharees_removed: Optional[int]) -> None:
        self._audit(AUDIT_CREDENTIALS_SHARED, {
            **user_to_payload(user),
            "credentialName": credential_name,
            "credentialType": credential_type,
            "credentialId": credential_id,
            "userIdSharer": user_id_sharer,
            "userIdsShareesAdded": list(user_ids_sharees_added),
            "shareesRemoved": sharees_removed,
        })
        self._track(TRACK_CREDENTIALS_SHARED, {
            "user_id": user.id,
            "credential_type": credential_type,
            "credential_id": credential_id,
            "user_id_sharer": user_id_sharer,
            "user_ids_sharees_added": list(user_ids_sharees_added),
            "sharees_removed": sharees_removed,
            "instance_id": self.settings.instance_id,
        })

    # =========================================================================
    # Community packages
    # =========================================================================

    async def on_community_package_install_finished(
        self,
        user: User,
        input_string: str,
        package_name: str,
        success: bool,
        package_version: Optional[str] = None,
        package_node_names: Optional[List[str]] = None,
        package_author: Optional[str] = None,
        package_author_email: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> None:
        self._audit(AUDIT_PACKAGE_INSTALLED, {
            **user_to_payload(user),
            "inputString": input_string,
            "packageName": package_name,
            "success": success,
            "packageVersion": package_version,
            "packageNodeNames": package_node_names,
            "packageAuthor": package_author,
            "packageAuthorEmail": package_author_email,
            "failureReason": failure_reason,
        })
        self._track(TRACK_PACKAGE_INSTALLED, {
            "user_id": user.id,
            "input_string": input_string,
            "package_name": package_name,
            "success": success,
            "package_version": package_version,
            "package_node_names": package_node_names,
            "package_author": package_author,
            "package_author_email": package_author_email,
            "failure_reason": failure_reason,
        })

    async def on_community_package_update_finished(
        self,
        user: User,
        package_name: str,
        package_version_current: str,
        package_version_new: str,
        package_node_names: List[str],
        package_author: Optional[str] = None,
        package_author_email: Optional[str] = None,
    ) -> None:
        self._audit(AUDIT_PACKAGE_UPDATED, {
            **user_to_payload(user),
            "packageName": package_name,
            "packageVersionCurrent": package_version_current,
            "packageVersionNew": package_version_new,
            "packageNodeNames": package_node_names,
            "packageAuthor": package_author,
            "packageAuthorEmail": package_author_email,
        })
        self._track(TRACK_PACKAGE_UPDATED, {
            "user_id": user.id,
            "package_name": package_name,
            "package_version_current": package_version_current,
            "package_version_new": package_version_new,
            "package_node_names": package_node_names,
            "package_author": package_author,
            "package_author_email": package_author_email,
        })

    async def on_community_package_delete_finished(
        self,
        user: User,
        package_name: str,
        package_version: str,
        package_node_names: List[str],
        package_author: Optional[str] = None,
        package_author_email: Optional[str] = None,
    ) -> None:
        self._audit(AUDIT_PACKAGE_DELETED, {
            **user_to_payload(user),
            "packageName": package_name,
            "packageVersion": package_version,
            "packageNodeNames": package_node_names,
            "packageAuthor": package_author,
            "packageAuthorEmail": package_author_email,
        })
        self._track(TRACK_PACKAGE_DELETED, {
            "user_id": user.id,
            "package_name": package_name,
            "package_version": package_version,
            "package_node_names": package_node_names,
            "package_author": package_author,
            "package_author_email": package_author_email,
        })

    # =========================================================================
    # Execution statistics
    # =========================================================================

    async def on_first_production_workflow_success(self, user_id: str, workflow_id: str) -> None:
        self._track(TRACK_FIRST_PRODUCTION_SUCCESS, {
            "user_id": user_id,
            "workflow_id": workflow_id,
        })

    async def on_first_workflow_data_load(self, user_id: str, workflow_id: str,
                                          node_type: str, node_id: str,
                                          credential_type: Optional[str] = None,
                                          credential_id: Optional[str] = None) -> None:
        self._track(TRACK_FIRST_DATA_LOAD, {
            "user_id": user_id,
            "workflow_id": workflow_id,
            "node_type": node_type,
            "node_id": node_id,
            "credential_type": credential_type,
            "credential_id": credential_id,
        })
