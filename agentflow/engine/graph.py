"""
Flow Graph index.

Wraps a saved Flow with lookups used during traversal (node by id,
outgoing edges in edge order, trigger lookup, edge selection by handle)
and with the save-time structural validation of a flow.
"""

from typing import Any, Dict, List, Optional, Set

from agentflow.engine.context import HANDLE_KEY
from agentflow.engine.errors import ConfigurationError, NoTriggerFound
from agentflow.engine.models import Edge, Flow, Node, is_trigger_type, parse_node_config


class FlowGraph:
    """
    Read-only view over a Flow's nodes and edges.

    Attributes:
        flow: The wrapped flow
        trigger_prefix: Node type prefix denoting trigger nodes
    """

    def __init__(self, flow: Flow, trigger_prefix: str = "trigger_"):
        self.flow = flow
        self.trigger_prefix = trigger_prefix
        self._nodes: Dict[str, Node] = {}
        for node in flow.nodes:
            # First definition wins for duplicated ids
            self._nodes.setdefault(node.id, node)
        self._outgoing: Dict[str, List[Edge]] = {}
        for edge in flow.edges:
            self._outgoing.setdefault(edge.source, []).append(edge)

    @property
    def nodes(self) -> Dict[str, Node]:
        return self._nodes

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get a node by id."""
        return self._nodes.get(node_id)

    def outgoing(self, node_id: str) -> List[Edge]:
        """Edges leaving a node, in edge order."""
        return self._outgoing.get(node_id, [])

    def is_trigger(self, node: Node) -> bool:
        return is_trigger_type(node.type, self.trigger_prefix)

    def triggers(self) -> List[Node]:
        """All trigger nodes, in node order."""
        return [n for n in self.flow.nodes if self.is_trigger(n)]

    def find_trigger(self, entry_node_id: Optional[str] = None) -> Node:
        """
        Locate the entry node of a run.

        The first trigger in node order is used unless entry_node_id names
        a specific trigger node.

        Raises:
            NoTriggerFound: If the flow is empty, has no trigger, or
                entry_node_id is not a trigger node of this flow
        """
        if not self.flow.nodes:
            raise NoTriggerFound("flow is empty")
        if entry_node_id is not None:
            node = self.get_node(entry_node_id)
            if node is None or not self.is_trigger(node):
                raise NoTriggerFound(f"node '{entry_node_id}' is not a trigger node")
            return node
        for node in self.flow.nodes:
            if self.is_trigger(node):
                return node
        raise NoTriggerFound("no trigger node found")

    def next_node_ids(self, node_id: str, output: Optional[Dict[str, Any]]) -> List[str]:
        """
        Select the targets to follow after a node produced output.

        If the output carries a handle, only edges whose source handle
        equals it are followed; otherwise every outgoing edge is.
        """
        edges = self.outgoing(node_id)
        if output and HANDLE_KEY in output:
            handle = str(output[HANDLE_KEY])
            return [e.target for e in edges if e.source_handle == handle]
        return [e.target for e in edges]

    def find_cycle(self, start: str) -> Optional[List[str]]:
        """
        Find a cycle reachable from start.

        Returns:
            The node-id path of the first cycle found (first and last
            element equal), or None if the reachable subgraph is acyclic
        """
        done: Set[str] = set()
        path: List[str] = []
        on_path: Set[str] = set()
        # Iterative DFS: (node_id, index of next outgoing edge)
        stack: List[List[Any]] = [[start, 0]]
        path.append(start)
        on_path.add(start)

        while stack:
            frame = stack[-1]
            node_id, index = frame
            edges = self.outgoing(node_id)
            if index >= len(edges):
                stack.pop()
                path.pop()
                on_path.discard(node_id)
                done.add(node_id)
                continue
            frame[1] += 1
            target = edges[index].target
            if target in on_path:
                return path[path.index(target):] + [target]
            if target in done or target not in self._nodes:
                continue
            stack.append([target, 0])
            path.append(target)
            on_path.add(target)

        return None

    def validate(self) -> List[str]:
        """
        Validate the flow structure and node configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: List[str] = []

        seen: Set[str] = set()
        for node in self.flow.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node id '{node.id}'")
            seen.add(node.id)

        for edge in self.flow.edges:
            if edge.source not in self._nodes:
                errors.append(f"Edge '{edge.id}' references unknown source node '{edge.source}'")
            if edge.target not in self._nodes:
                errors.append(f"Edge '{edge.id}' references unknown target node '{edge.target}'")

        triggers = self.triggers()
        if not triggers:
            errors.append("Flow must have a trigger node")

        for node in self.flow.nodes:
            try:
                config = parse_node_config(node.type, node.data, self.trigger_prefix)
            except ConfigurationError as e:
                errors.append(f"Node '{node.display_name}': {e}")
                continue
            if config is None:
                errors.append(f"Node '{node.display_name}' has unknown type '{node.type}'")

        for trigger in triggers:
            cycle = self.find_cycle(trigger.id)
            if cycle:
                errors.append(f"Cycle detected: {' -> '.join(cycle)}")
                break

        return errors

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the flow."""
        lines = ["graph TD"]

        for node in self.flow.nodes:
            label = (node.label or node.type).replace('"', "'")
            if self.is_trigger(node):
                lines.append(f'    {node.id}(["{label}"])')
            else:
                lines.append(f'    {node.id}["{label}"]')

        for edge in self.flow.edges:
            tag = edge.source_handle or edge.label
            if tag:
                lines.append(f"    {edge.source} -->|{tag}| {edge.target}")
            else:
                lines.append(f"    {edge.source} --> {edge.target}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"FlowGraph(name='{self.flow.name}', nodes={list(self._nodes.keys())})"


def validate_flow(flow: Flow, trigger_prefix: str = "trigger_") -> List[str]:
    """Validate a flow before it is saved."""
    return FlowGraph(flow, trigger_prefix).validate()
