"""Workflow node graph generation and per-dispatch memoization.

The graph is a privacy-safe view of a workflow: node types, versions,
positions and connections keyed by index, never node names or parameters.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol

from constants import (
    WEBHOOK_NODE_TYPES,
    STICKY_NOTE_TYPES,
    STICKY_NOTE_DEFAULT_WIDTH,
    STICKY_NOTE_DEFAULT_HEIGHT,
    NODE_WIDTH,
    NODE_HEIGHT,
)
from core.logging import get_logger
from models.workflow import WorkflowNode, WorkflowSnapshot
from .models import NodeGraph

logger = get_logger(__name__)

# node type -> definition, e.g. {"version": 2, "webhooks": True}
NodeTypeRegistry = Mapping[str, Mapping[str, Any]]


class GraphGenerator(Protocol):
    """Anything that can turn a workflow into a NodeGraph."""

    def generate(self, workflow: WorkflowSnapshot,
                 node_types: NodeTypeRegistry) -> NodeGraph:
        ...


def _is_inside(node: WorkflowNode, note: WorkflowNode) -> bool:
    width = note.parameters.get("width", STICKY_NOTE_DEFAULT_WIDTH)
    height = note.parameters.get("height", STICKY_NOTE_DEFAULT_HEIGHT)
    note_x, note_y = note.position[0], note.position[1]
    node_x, node_y = node.position[0], node.position[1]
    return (
        node_x + NODE_WIDTH > note_x
        and node_x < note_x + width
        and node_y + NODE_HEIGHT > note_y
        and node_y < note_y + height
    )


class DefaultGraphGenerator:
    """Builds a NodeGraph from the workflow's node list and connections.

    Index ids follow the workflow's node list order, sticky notes included,
    so ``webhook_node_names`` is in node list order as well.
    """

    def generate(self, workflow: WorkflowSnapshot,
                 node_types: NodeTypeRegistry) -> NodeGraph:
        nodes: Dict[str, Dict[str, Any]] = {}
        notes: Dict[str, Dict[str, bool]] = {}
        name_indices: Dict[str, str] = {}
        type_list: List[str] = []
        webhook_node_names: List[str] = []

        regular_nodes = [n for n in workflow.nodes if n.type not in STICKY_NOTE_TYPES]

        for index, node in enumerate(workflow.nodes):
            key = str(index)
            if node.type in STICKY_NOTE_TYPES:
                notes[key] = {
                    "overlapping": any(_is_inside(other, node) for other in regular_nodes),
                }
                continue

            definition = node_types.get(node.type, {})
            version = node.type_version if node.type_version is not None else definition.get("version", 1)
            nodes[key] = {
                "id": node.id,
                "type": node.type,
                "version": version,
                "position": list(node.position),
            }
            type_list.append(node.type)
            name_indices[node.name] = key

            if node.type in WEBHOOK_NODE_TYPES or definition.get("webhooks"):
                webhook_node_names.append(node.name)

        connections: List[Dict[str, str]] = []
        for source_name, outputs in workflow.connections.items():
            source = name_indices.get(source_name)
            if source is None:
                continue
            for output_slots in outputs.values():
                for slot in output_slots or []:
                    for target in slot or []:
                        end = name_indices.get(target.get("node"))
                        if end is not None:
                            connections.append({"start": source, "end": end})

        return NodeGraph(
            nodes=nodes,
            connections=connections,
            notes=notes,
            node_types=type_list,
            name_indices=name_indices,
            webhook_node_names=webhook_node_names,
        )


class NodeGraphCache:
    """Get-or-build accessor for one dispatch's node graph.

    Each execution's dispatch owns its own instance; nothing is shared
    across executions. Generator errors propagate to the caller.
    """

    def __init__(self, generator: GraphGenerator, workflow: WorkflowSnapshot,
                 node_types: NodeTypeRegistry):
        self._generator = generator
        self._workflow = workflow
        self._node_types = node_types
        self._graph: Optional[NodeGraph] = None

    @property
    def built(self) -> bool:
        return self._graph is not None

    def get(self) -> NodeGraph:
        """Return the graph, generating it on first access."""
        if self._graph is None:
            self._graph = self._generator.generate(self._workflow, self._node_types)
            logger.debug("Node graph generated",
                         workflow_id=self._workflow.id,
                         node_count=len(self._graph.nodes))
        return self._graph
