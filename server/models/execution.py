"""Pydantic models for raw execution results.

Mirrors the run result the workflow engine hands over when an execution
finishes. Only the fields the event pipeline reads are declared; everything
else is kept as extra data.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from models.workflow import WorkflowSnapshot


class _EngineModel(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}


class ErrorNode(_EngineModel):
    """Node reference attached to an execution error."""
    name: Optional[str] = None
    type: Optional[str] = None


class ExecutionError(_EngineModel):
    """Top-level error of a run."""
    message: str = ""
    node: Optional[ErrorNode] = None


class ResultData(_EngineModel):
    error: Optional[ExecutionError] = None
    last_node_executed: Optional[str] = Field(default=None, alias="lastNodeExecuted")
    # node name -> list of task runs, each {"data": {"main": [[{"json": {...}}]]}}
    run_data: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict, alias="runData")
    metadata: Optional[Dict[str, Any]] = None


class StartData(_EngineModel):
    destination_node: Optional[str] = Field(default=None, alias="destinationNode")


class RunExecutionData(_EngineModel):
    start_data: Optional[StartData] = Field(default=None, alias="startData")
    result_data: ResultData = Field(default_factory=ResultData, alias="resultData")


class Run(_EngineModel):
    """Raw result of one workflow execution."""
    finished: bool = False
    # None when the engine omits it; such runs are never treated as manual
    mode: Optional[str] = None
    status: Optional[str] = None
    wait_till: Optional[Any] = Field(default=None, alias="waitTill")
    data: RunExecutionData = Field(default_factory=RunExecutionData)

    @property
    def error(self) -> Optional[ExecutionError]:
        return self.data.result_data.error

    @property
    def destination_node(self) -> Optional[str]:
        if self.data.start_data is None:
            return None
        return self.data.start_data.destination_node


class ExecutionStartData(_EngineModel):
    """Execution context passed when an execution is about to start.

    Workers in queue mode only have the workflow itself, in which case
    ``user_id`` and ``execution_mode`` are absent.
    """
    workflow_data: WorkflowSnapshot = Field(default_factory=WorkflowSnapshot, alias="workflowData")
    execution_mode: Optional[str] = Field(default=None, alias="executionMode")
    user_id: Optional[str] = Field(default=None, alias="userId")
