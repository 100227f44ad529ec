"""
Branch-order repair (second layout pass).

Placement alone depends on storage order. This pass enforces, for every
if_condition, that the true cluster sits above (LR) or left of (TB) the
false cluster, and for every loop that the loopComplete cluster sits
above the loopBody cluster, comparing the average cross-axis coordinate
of each cluster.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Set, Tuple

from ..graph.models import Graph, Handle, NodeType, Position
from ..graph.traversal import branch_cluster, topological_order
from .options import LayoutOptions


logger = logging.getLogger(__name__)


# node type -> (handle whose cluster goes first, handle whose cluster goes second)
BRANCH_ORDER: Dict[NodeType, Tuple[str, str]] = {
    NodeType.IF_CONDITION: (Handle.TRUE.value, Handle.FALSE.value),
    NodeType.LOOP: (Handle.LOOP_COMPLETE.value, Handle.LOOP_BODY.value),
}


def _cross(position: Position, options: LayoutOptions) -> float:
    return position.y if options.rankdir == "LR" else position.x


def _mean(values) -> float:
    values = list(values)
    return sum(values) / len(values)


def branch_order_violations(graph: Graph, options: Optional[LayoutOptions] = None) -> Dict[str, Tuple[float, float]]:
    """
    Branching nodes whose clusters are out of order.

    Maps node id -> (first cluster average, second cluster average).
    Nodes missing either output are never violations.
    """
    options = options or LayoutOptions.from_settings()
    cross = {n.id: _cross(n.position, options) for n in graph.nodes}
    found: Dict[str, Tuple[float, float]] = {}
    for node in graph.nodes:
        handles = BRANCH_ORDER.get(node.type)
        if handles is None:
            continue
        first = branch_cluster(graph, node.id, handles[0])
        second = branch_cluster(graph, node.id, handles[1])
        if not first or not second:
            continue
        first_avg = _mean(cross[n] for n in first)
        second_avg = _mean(cross[n] for n in second)
        if first_avg >= second_avg:
            found[node.id] = (first_avg, second_avg)
    return found


def _repair_one(
    cross: Dict[str, float],
    first: Set[str],
    second: Set[str],
    spacing: float,
) -> bool:
    """
    Shift the nodes owned by only one cluster so `first` ends up strictly
    before `second`. Nodes in both clusters stay put.

    With disjoint clusters both move by the difference of their averages,
    which mirrors them about their midpoint. Returns False when no shift
    can separate them (the clusters are identical).
    """
    diff = _mean(cross[n] for n in first) - _mean(cross[n] for n in second)
    if diff < 0:
        return True

    only_first = first - second
    only_second = second - first
    share = len(only_first) / len(first) + len(only_second) / len(second)
    if share == 0:
        return False

    gap = diff if diff > 0 else spacing / 2
    shift = (diff + gap) / share
    for n in only_first:
        cross[n] -= shift
    for n in only_second:
        cross[n] += shift
    return True


def repair_branch_order(graph: Graph, options: Optional[LayoutOptions] = None) -> Graph:
    """
    Return the graph with branch clusters moved into order.

    Branching nodes are handled in topological order, repeating until a
    full pass changes nothing. An already ordered graph comes back with
    identical positions.
    """
    options = options or LayoutOptions.from_settings()
    if not graph.nodes:
        return graph

    cross = {n.id: _cross(n.position, options) for n in graph.nodes}
    branching = [
        graph.get_node(node_id) for node_id in topological_order(graph)
        if graph.get_node(node_id).type in BRANCH_ORDER
    ]
    clusters = {
        node.id: (
            branch_cluster(graph, node.id, BRANCH_ORDER[node.type][0]),
            branch_cluster(graph, node.id, BRANCH_ORDER[node.type][1]),
        )
        for node in branching
    }

    moved: Set[str] = set()
    for _ in range(len(branching) + 1):
        changed = False
        for node in branching:
            first, second = clusters[node.id]
            if not first or not second:
                continue
            before = _mean(cross[n] for n in first) - _mean(cross[n] for n in second)
            if before < 0:
                continue
            if not _repair_one(cross, first, second, options.cross_spacing):
                logger.debug("Cannot separate identical branch clusters of %s", node.id)
                continue
            logger.debug("Repaired branch order of %s", node.id)
            moved.add(node.id)
            changed = True
        if not changed:
            break

    if not moved:
        return graph

    positions: Dict[str, Position] = {}
    for node in graph.nodes:
        if cross[node.id] == _cross(node.position, options):
            continue
        if options.rankdir == "LR":
            positions[node.id] = Position(x=node.position.x, y=cross[node.id])
        else:
            positions[node.id] = Position(x=cross[node.id], y=node.position.y)
    return graph.with_positions(positions)


__all__ = ["BRANCH_ORDER", "branch_order_violations", "repair_branch_order"]
