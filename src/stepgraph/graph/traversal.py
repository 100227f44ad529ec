"""
Graph traversal helpers shared by numbering, layout and the dry-run executor.
"""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from .models import EdgeKind, Graph, Handle, NodeType, WorkflowEdge


def topological_order(graph: Graph) -> List[str]:
    """
    Node ids in topological order.

    Uses Kahn's algorithm with a FIFO queue seeded in node order, so the
    result is stable for a given graph value. Nodes stuck on a cycle are
    appended at the end in node order.
    """
    node_ids = graph.node_ids
    known = set(node_ids)
    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    successors: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for edge in graph.edges:
        if edge.source in known and edge.target in known:
            successors[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    queue = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
    order: List[str] = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for target in successors[current]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    if len(order) != len(node_ids):
        placed = set(order)
        order.extend(node_id for node_id in node_ids if node_id not in placed)
    return order


def direct_upstream(graph: Graph, node_id: str) -> Optional[str]:
    """The node feeding this one through its first incoming edge, if any."""
    for edge in graph.edges:
        if edge.target == node_id:
            return edge.source
    return None


def ancestors(graph: Graph, node_id: str) -> List[str]:
    """
    Every node with a path to `node_id`, trigger first.

    Collected breadth-first over incoming edges, then ordered
    topologically so each ancestor comes after everything it depends on.
    """
    predecessors: Dict[str, List[str]] = {}
    for edge in graph.edges:
        predecessors.setdefault(edge.target, []).append(edge.source)

    found: Set[str] = set()
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for source in predecessors.get(current, []):
            if source not in found and source != node_id:
                found.add(source)
                queue.append(source)

    return [n for n in topological_order(graph) if n in found]


def reachable_from(graph: Graph, starts: Iterable[str], blocked: Iterable[str] = ()) -> Set[str]:
    """Nodes reachable from `starts` (inclusive) without entering `blocked`."""
    blocked_ids = set(blocked)
    successors: Dict[str, List[str]] = {}
    for edge in graph.edges:
        successors.setdefault(edge.source, []).append(edge.target)

    seen: Set[str] = set()
    queue = deque(s for s in starts if s not in blocked_ids)
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        for target in successors.get(current, []):
            if target not in seen and target not in blocked_ids:
                queue.append(target)
    return seen


def branch_cluster(graph: Graph, node_id: str, handle: str) -> Set[str]:
    """
    Nodes reachable through one output handle of a node.

    The traversal never passes back through the node itself, so nodes
    downstream of a convergence point show up in every branch's cluster.
    """
    starts = [e.target for e in graph.outgoing_edges(node_id) if e.handle == handle]
    return reachable_from(graph, starts, blocked=[node_id])


def loop_back_edges(graph: Graph) -> List[WorkflowEdge]:
    """
    Derived edges from the end of each loop body back to its loop node.

    These are never stored; the view layer draws them. The body chain is
    followed along main edges until a node without one.
    """
    derived: List[WorkflowEdge] = []
    for node in graph.nodes:
        if node.type != NodeType.LOOP:
            continue
        body = next(
            (e for e in graph.outgoing_edges(node.id) if e.handle == Handle.LOOP_BODY.value),
            None,
        )
        if body is None:
            continue

        terminal = body.target
        visited = {node.id, terminal}
        while True:
            nxt = next(
                (e for e in graph.outgoing_edges(terminal) if e.handle == Handle.MAIN.value),
                None,
            )
            if nxt is None or nxt.target in visited:
                break
            terminal = nxt.target
            visited.add(terminal)

        derived.append(WorkflowEdge(
            id=f"loopback-{node.id}",
            source=terminal,
            target=node.id,
            kind=EdgeKind.LOOP,
        ))
    return derived


__all__ = [
    "topological_order",
    "direct_upstream",
    "ancestors",
    "reachable_from",
    "branch_cluster",
    "loop_back_edges",
]
