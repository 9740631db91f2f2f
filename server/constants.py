"""Centralized constants for event names and node categories.

Event names form the external contract with downstream dashboards and
alerting. Renaming one is a breaking change.
"""

from typing import FrozenSet

# =============================================================================
# AUDIT EVENT NAMES (<domain>.audit.<entity>.<action>)
# =============================================================================

AUDIT_WORKFLOW_CREATED = 'n8n.audit.workflow.created'
AUDIT_WORKFLOW_DELETED = 'n8n.audit.workflow.deleted'
AUDIT_WORKFLOW_UPDATED = 'n8n.audit.workflow.updated'

AUDIT_USER_DELETED = 'n8n.audit.user.deleted'
AUDIT_USER_INVITED = 'n8n.audit.user.invited'
AUDIT_USER_UPDATED = 'n8n.audit.user.updated'
AUDIT_USER_SIGNED_UP = 'n8n.audit.user.signedup'
AUDIT_USER_LOGIN_SUCCESS = 'n8n.audit.user.login.success'
AUDIT_USER_LOGIN_FAILED = 'n8n.audit.user.login.failed'

AUDIT_CREDENTIALS_CREATED = 'n8n.audit.user.credentials.created'
AUDIT_CREDENTIALS_SHARED = 'n8n.audit.user.credentials.shared'

AUDIT_PACKAGE_INSTALLED = 'n8n.audit.package.installed'
AUDIT_PACKAGE_UPDATED = 'n8n.audit.package.updated'
AUDIT_PACKAGE_DELETED = 'n8n.audit.package.deleted'

# =============================================================================
# WORKFLOW / NODE EVENT NAMES
# =============================================================================

WORKFLOW_STARTED = 'n8n.workflow.started'
WORKFLOW_SUCCESS = 'n8n.workflow.success'
WORKFLOW_FAILED = 'n8n.workflow.failed'
WORKFLOW_CRASHED = 'n8n.workflow.crashed'

NODE_STARTED = 'n8n.node.started'
NODE_FINISHED = 'n8n.node.finished'

# =============================================================================
# ANALYTICS EVENT NAMES
# =============================================================================

TRACK_INSTANCE_STARTED = 'Instance started'
TRACK_INSTANCE_STOPPED = 'User instance stopped'
TRACK_SESSION_STARTED = 'Session started'
TRACK_PERSONALIZATION_SURVEY = 'User responded to personalization questions'
TRACK_WORKFLOW_CREATED = 'User created workflow'
TRACK_WORKFLOW_DELETED = 'User deleted workflow'
TRACK_WORKFLOW_SAVED = 'User saved workflow'
TRACK_WORKFLOW_SHARING_UPDATED = 'User updated workflow sharing'
TRACK_WORKFLOW_EXECUTION_COUNT = 'Workflow execution count'
TRACK_MANUAL_NODE_EXEC = 'Manual node exec finished'
TRACK_MANUAL_WORKFLOW_EXEC = 'Manual workflow exec finished'
TRACK_USER_DELETED = 'User deleted user'
TRACK_USER_INVITED = 'User invited new user'
TRACK_USER_UPDATED = 'User changed personal settings'
TRACK_USER_SIGNED_UP = 'User signed up'
TRACK_CREDENTIALS_CREATED = 'User created credentials'
TRACK_CREDENTIALS_SHARED = 'User updated cred sharing'
TRACK_PACKAGE_INSTALLED = 'cnr package install finished'
TRACK_PACKAGE_UPDATED = 'cnr package updated'
TRACK_PACKAGE_DELETED = 'cnr package deleted'
TRACK_FIRST_PRODUCTION_SUCCESS = 'Workflow first prod success'
TRACK_FIRST_DATA_LOAD = 'Workflow first data fetched'

# =============================================================================
# NODE TYPES
# =============================================================================

# Inbound HTTP triggers whose output carries the caller's request headers
WEBHOOK_NODE_TYPES: FrozenSet[str] = frozenset([
    'n8n-nodes-base.webhook',
    'n8n-nodes-base.formTrigger',
    'webhookTrigger',
])

# Canvas annotations, tracked as notes rather than nodes
STICKY_NOTE_TYPES: FrozenSet[str] = frozenset([
    'n8n-nodes-base.stickyNote',
])

# Assumed sticky note size when the node carries no width/height parameters
STICKY_NOTE_DEFAULT_WIDTH = 150
STICKY_NOTE_DEFAULT_HEIGHT = 160

# Node descriptor size used for sticky note overlap detection
NODE_WIDTH = 100
NODE_HEIGHT = 100

# =============================================================================
# SHUTDOWN
# =============================================================================

SHUTDOWN_TIMEOUT_MS = 3000
