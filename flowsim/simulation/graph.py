"""Flow graph construction and validation.

A FlowGraph is the immutable substrate every iteration perturbs. Links refer
to nodes by index only; the outgoing adjacency is precomputed once here so the
bandit never rescans the link list.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable, Optional

from flowsim.models.graph import FlowDiagram, FlowLink, FlowNode, NodeCategory

# Flows into these categories reduce a path's return
_OUTFLOW_CATEGORIES = frozenset({NodeCategory.expense, NodeCategory.liability})


class InvalidGraphError(ValueError):
    """Raised when a flow graph cannot be simulated."""


@dataclass(frozen=True)
class FlowGraph:
    nodes: tuple[FlowNode, ...]
    links: tuple[FlowLink, ...]
    source: int
    outgoing: tuple[tuple[int, ...], ...]  # node index -> link indices, declared order

    def is_terminal(self, node: int) -> bool:
        return not self.outgoing[node]

    def link_sign(self, link_index: int) -> float:
        """+1 for inflows, -1 for links into expense/liability nodes."""
        target = self.nodes[self.links[link_index].target]
        return -1.0 if target.category in _OUTFLOW_CATEGORIES else 1.0

    def link_label(self, link_index: int) -> str:
        link = self.links[link_index]
        return f"{self.nodes[link.source].name} -> {self.nodes[link.target].name}"


def build_graph(
    nodes: Iterable[FlowNode],
    links: Iterable[FlowLink],
    source: Optional[int] = None,
) -> FlowGraph:
    """Validate nodes/links and return an immutable FlowGraph.

    Raises InvalidGraphError if the graph is empty, a link or the source points
    outside the node list, or some node reachable from the source has no route
    to a terminal node (a closed cycle the path builder could never leave).
    """
    node_tuple = tuple(nodes)
    link_tuple = tuple(links)
    n = len(node_tuple)
    if n == 0:
        raise InvalidGraphError("graph must contain at least one node")

    outgoing: list[list[int]] = [[] for _ in range(n)]
    has_incoming = [False] * n
    for i, link in enumerate(link_tuple):
        for end, idx in (("source", link.source), ("target", link.target)):
            if not 0 <= idx < n:
                raise InvalidGraphError(
                    f"link {i} {end} index {idx} is out of range for {n} nodes"
                )
        outgoing[link.source].append(i)
        has_incoming[link.target] = True

    if source is None:
        source = next((i for i in range(n) if not has_incoming[i]), 0)
    elif not 0 <= source < n:
        raise InvalidGraphError(f"source index {source} is out of range for {n} nodes")

    graph = FlowGraph(
        nodes=node_tuple,
        links=link_tuple,
        source=source,
        outgoing=tuple(tuple(idx) for idx in outgoing),
    )
    _check_escapable(graph)
    return graph


def from_diagram(diagram: FlowDiagram) -> FlowGraph:
    return build_graph(diagram.nodes, diagram.links, diagram.source)


def _check_escapable(graph: FlowGraph) -> None:
    n = len(graph.nodes)

    # Nodes that can reach a terminal: reverse BFS from all terminals
    incoming: list[list[int]] = [[] for _ in range(n)]
    for link in graph.links:
        incoming[link.target].append(link.source)
    can_exit = [graph.is_terminal(i) for i in range(n)]
    queue = deque(i for i in range(n) if can_exit[i])
    while queue:
        node = queue.popleft()
        for parent in incoming[node]:
            if not can_exit[parent]:
                can_exit[parent] = True
                queue.append(parent)

    # Forward BFS from the source over reachable nodes
    seen = {graph.source}
    queue = deque([graph.source])
    while queue:
        node = queue.popleft()
        if not can_exit[node]:
            raise InvalidGraphError(
                f"node {graph.nodes[node].id!r} is reachable from the source "
                "but cannot reach any terminal node"
            )
        for link_index in graph.outgoing[node]:
            target = graph.links[link_index].target
            if target not in seen:
                seen.add(target)
                queue.append(target)
