"""
Flow graph walker for campaign canvases.

Depth-first search over the edge list, in edge-list order. The start node is
never a match, the first node of the requested type wins, and a visited set
keeps cyclic graphs finite.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from teleflow.schemas.campaign import FlowEdge, FlowNode

NodeLike = Union[FlowNode, Dict[str, Any]]
EdgeLike = Union[FlowEdge, Dict[str, Any]]


def _as_node(node: NodeLike) -> FlowNode:
    return node if isinstance(node, FlowNode) else FlowNode.model_validate(node)


def _as_edge(edge: EdgeLike) -> FlowEdge:
    return edge if isinstance(edge, FlowEdge) else FlowEdge.model_validate(edge)


class FlowGraphWalker:
    """Read-only view of one campaign flow graph."""

    def __init__(self, nodes: Iterable[NodeLike], edges: Iterable[EdgeLike]):
        self.nodes: List[FlowNode] = [_as_node(n) for n in nodes]
        self.edges: List[FlowEdge] = [_as_edge(e) for e in edges]
        self._by_id: Dict[str, FlowNode] = {}
        for node in self.nodes:
            self._by_id.setdefault(node.id, node)

    def get(self, node_id: Optional[str]) -> Optional[FlowNode]:
        if node_id is None:
            return None
        return self._by_id.get(node_id)

    def find_next_of_type(self, start_id: str, node_type: str) -> Optional[FlowNode]:
        """Nearest node of ``node_type`` reachable downstream of ``start_id``."""
        return self._walk(start_id, node_type, downstream=True)

    def find_upstream_of_type(self, start_id: str, node_type: str) -> Optional[FlowNode]:
        """Nearest node of ``node_type`` reachable upstream of ``start_id``."""
        return self._walk(start_id, node_type, downstream=False)

    def first_of_type(self, node_type: str, exclude: Sequence[str] = ()) -> Optional[FlowNode]:
        """First node of ``node_type`` in node-list order, ignoring graph position."""
        for node in self.nodes:
            if node.type == node_type and node.id not in exclude:
                return node
        return None

    def of_type(self, node_type: str) -> List[FlowNode]:
        return [node for node in self.nodes if node.type == node_type]

    def _walk(self, start_id: str, node_type: str, downstream: bool) -> Optional[FlowNode]:
        if start_id not in self._by_id:
            return None

        visited: Set[str] = {start_id}

        def visit(node_id: str) -> Optional[FlowNode]:
            for edge in self.edges:
                current, neighbour = (edge.source, edge.target) if downstream else (edge.target, edge.source)
                if current != node_id or neighbour in visited:
                    continue
                visited.add(neighbour)
                node = self._by_id.get(neighbour)
                if node is None:
                    continue
                if node.type == node_type:
                    return node
                found = visit(neighbour)
                if found is not None:
                    return found
            return None

        return visit(start_id)


def find_next_of_type(
    nodes: Iterable[NodeLike], edges: Iterable[EdgeLike], start_id: str, node_type: str
) -> Optional[FlowNode]:
    return FlowGraphWalker(nodes, edges).find_next_of_type(start_id, node_type)


def find_upstream_of_type(
    nodes: Iterable[NodeLike], edges: Iterable[EdgeLike], start_id: str, node_type: str
) -> Optional[FlowNode]:
    return FlowGraphWalker(nodes, edges).find_upstream_of_type(start_id, node_type)
