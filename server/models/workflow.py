"""Pydantic models for workflow snapshots.

Snapshots arrive from the workflow engine as camelCase JSON; aliases map
them onto snake_case fields while still accepting either spelling.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class WorkflowNode(BaseModel):
    """A single node of a workflow definition."""
    model_config = {"populate_by_name": True, "extra": "allow"}

    name: str
    type: str
    id: Optional[str] = None
    type_version: Optional[float] = Field(default=None, alias="typeVersion")
    position: List[float] = Field(default_factory=lambda: [0, 0])
    parameters: Dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False


class WorkflowSnapshot(BaseModel):
    """Workflow definition at the moment an event was raised."""
    model_config = {"populate_by_name": True, "extra": "allow"}

    id: Optional[str] = None
    name: str = ""
    nodes: List[WorkflowNode] = Field(default_factory=list)
    # {source_name: {"main": [[{"node": target_name, "type": "main", "index": 0}]]}}
    connections: Dict[str, Dict[str, List[Any]]] = Field(default_factory=dict)
    tags: List[Any] = Field(default_factory=list)

    def get_node(self, name: str) -> Optional[WorkflowNode]:
        """Find a node by name, or None."""
        for node in self.nodes:
            if node.name == name:
                return node
        return None
