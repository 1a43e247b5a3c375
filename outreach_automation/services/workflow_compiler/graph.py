"""
Compiled workflow graph.

A CompiledGraph is the runtime-facing artifact: ordered nodes plus a
connections map keyed by node name (the runtime resolves edges by name).
Nothing in it depends on the time of compilation, so compiling the same
definition twice gives byte-identical JSON and the same fingerprint.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

TRIGGER_POSITION = [250, 0]
NODE_X = 450
NODE_SPACING_Y = 150


@dataclass
class GraphNode:
    id: str
    name: str
    type: str
    type_version: float
    position: List[int]
    parameters: Dict[str, Any] = field(default_factory=dict)
    step_id: Optional[str] = None
    role: str = 'action'  # trigger, wait, action, entry_guard, exit_guard

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'typeVersion': self.type_version,
            'position': list(self.position),
            'parameters': self.parameters,
        }


class CompiledGraph:
    def __init__(self, name: str, nodes: List[GraphNode], connections: Dict[str, List[List[str]]]):
        self.name = name
        self.nodes = nodes
        # source name -> output index -> target names
        self.connections = connections

    def node(self, name: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def nodes_for_step(self, step_id: str) -> List[GraphNode]:
        return [node for node in self.nodes if node.step_id == step_id]

    def action_node(self, step_id: str) -> Optional[GraphNode]:
        """The node that stands for the step itself (the first IF for condition steps)."""
        for node in self.nodes_for_step(step_id):
            if node.role == 'action':
                return node
        return None

    def successors(self, name: str, output: int = 0) -> List[str]:
        outputs = self.connections.get(name, [])
        return list(outputs[output]) if output < len(outputs) else []

    def predecessors(self, name: str) -> List[Tuple[str, int]]:
        result = []
        for source, outputs in self.connections.items():
            for index, targets in enumerate(outputs):
                if name in targets:
                    result.append((source, index))
        return result

    def topology(self) -> Dict[str, Any]:
        """Node types in order and every edge; what redeploy decisions compare."""
        return {
            'nodes': [(node.id, node.type) for node in self.nodes],
            'edges': sorted(
                (source, index, target)
                for source, outputs in self.connections.items()
                for index, targets in enumerate(outputs)
                for target in targets
            ),
        }

    def fingerprint(self) -> str:
        """sha256 over the full serialized graph, parameters included."""
        payload = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'nodes': [node.to_dict() for node in self.nodes],
            'connections': {
                source: {
                    'main': [
                        [{'node': target, 'type': 'main', 'index': 0} for target in targets]
                        for targets in outputs
                    ]
                }
                for source, outputs in self.connections.items()
            },
            'settings': {'executionOrder': 'v1'},
        }


class GraphBuilder:
    """Accumulates nodes and edges while a sequence is being compiled."""

    def __init__(self, name: str):
        self.name = name
        self.nodes: List[GraphNode] = []
        self.connections: Dict[str, List[List[str]]] = {}
        self._names = set()

    def _unique_name(self, name: str) -> str:
        candidate = name
        suffix = 2
        while candidate in self._names:
            candidate = f"{name} {suffix}"
            suffix += 1
        self._names.add(candidate)
        return candidate

    def add_node(self, name: str, node_type: str, type_version: float, parameters: Dict[str, Any],
                 step_id: Optional[str] = None, role: str = 'action') -> GraphNode:
        index = len(self.nodes)
        position = list(TRIGGER_POSITION) if index == 0 else [NODE_X, NODE_SPACING_Y * index]
        node = GraphNode(
            id=str(index),
            name=self._unique_name(name),
            type=node_type,
            type_version=type_version,
            position=position,
            parameters=parameters,
            step_id=step_id,
            role=role,
        )
        self.nodes.append(node)
        return node

    def connect(self, source: str, target: str, output: int = 0):
        outputs = self.connections.setdefault(source, [])
        while len(outputs) <= output:
            outputs.append([])
        if target not in outputs[output]:
            outputs[output].append(target)

    def build(self) -> CompiledGraph:
        return CompiledGraph(self.name, self.nodes, self.connections)
