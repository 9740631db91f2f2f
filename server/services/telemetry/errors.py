"""Failure attribution: which node made an execution fail."""

from typing import Optional

from models.execution import Run
from models.workflow import WorkflowSnapshot
from .models import ErrorAttribution


def attribute_error(run: Optional[Run], workflow: WorkflowSnapshot,
                    success: bool) -> ErrorAttribution:
    """Locate the failing node of an unsuccessful run.

    The node reference attached to the error is only a first guess. When the
    run trace names a last executed node that exists in the workflow, that
    node wins for both name and type. A lookup miss keeps the first guess.

    Args:
        run: Raw execution result
        workflow: Workflow snapshot the run was executed from
        success: Whether the run finished successfully

    Returns:
        ErrorAttribution; all fields None when there is nothing to attribute
    """
    if run is None or success or run.error is None:
        return ErrorAttribution()

    error = run.error
    node_name = error.node.name if error.node is not None else None
    node_type = error.node.type if error.node is not None else None

    last_node_executed = run.data.result_data.last_node_executed
    if last_node_executed:
        last_node = workflow.get_node(last_node_executed)
        if last_node is not None:
            node_type = last_node.type
            node_name = last_node.name

    return ErrorAttribution(
        error_message=error.message,
        error_node_type=node_type,
        error_node_name=node_name,
    )
