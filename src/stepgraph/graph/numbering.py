"""
Step Numbering - human-facing position labels.

Labels come from a Kahn topological walk over the stored edges:
sequential steps get "1", "2", "3"...; the targets of an if node's
true/false edges get "{N}a"/"{N}b" and loop body steps get "{N}.{k}",
where N is the parent's label.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, List

from .models import Graph, Handle, WorkflowEdge


logger = logging.getLogger(__name__)


def compute_step_labels(graph: Graph) -> Dict[str, str]:
    """
    Map node id -> step label.

    A node keeps the first label it is given, so a convergence point
    reached from several branches is labelled once. Nodes on a cycle
    (never well-formed) are left unlabelled.

    In-degree counts every stored edge, loopComplete included, so a
    loopComplete successor waits for the loop and is numbered as a plain
    continuation.
    """
    labels: Dict[str, str] = {}
    if not graph.nodes:
        return labels

    node_ids = graph.node_ids
    known = set(node_ids)
    adjacency: Dict[str, List[WorkflowEdge]] = {node_id: [] for node_id in node_ids}
    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    for edge in graph.edges:
        if edge.source not in known or edge.target not in known:
            continue
        adjacency[edge.source].append(edge)
        in_degree[edge.target] += 1

    queue = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
    counter = 1

    while queue:
        current = queue.popleft()
        if current not in labels:
            labels[current] = str(counter)
            counter += 1
        parent = labels[current]
        out_edges = adjacency[current]

        for edge in out_edges:
            if edge.handle == Handle.TRUE.value:
                labels.setdefault(edge.target, f"{parent}a")
        for edge in out_edges:
            if edge.handle == Handle.FALSE.value:
                labels.setdefault(edge.target, f"{parent}b")

        body_index = 1
        for edge in out_edges:
            if edge.handle == Handle.LOOP_BODY.value and edge.target not in labels:
                labels[edge.target] = f"{parent}.{body_index}"
                body_index += 1

        for edge in out_edges:
            in_degree[edge.target] -= 1
            if in_degree[edge.target] == 0:
                queue.append(edge.target)

    if len(labels) < len(node_ids):
        logger.debug(
            "Left %d node(s) unlabelled (cycle in stored edges)",
            len(node_ids) - len(labels),
        )
    return labels


def numeric_prefix(label: str) -> int:
    """Leading integer of a step label ("2a" -> 2, "3.1" -> 3)."""
    digits = ""
    for ch in label:
        if not ch.isdigit():
            break
        digits += ch
    return int(digits) if digits else 0


__all__ = ["compute_step_labels", "numeric_prefix"]
