"""
Layered placement (first layout pass).

Sugiyama-style: every node gets a rank (longest path from a source),
long edges are broken up with dummy nodes, each rank is ordered to cut
edge crossings, and finally nodes get coordinates. Edges are fed in
sorted per source so the true and loopComplete outputs come before false
and loopBody; that seeds tie-breaking toward the wanted branch order,
which the repair pass then enforces.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, List, Optional, Set, Tuple

from ..graph.models import Graph, Handle, Position, WorkflowEdge
from ..graph.traversal import topological_order
from .options import LayoutOptions


logger = logging.getLogger(__name__)


MAX_ORDER_SWEEPS = 24
COORDINATE_PASSES = 8

_HANDLE_RANK = {
    Handle.TRUE.value: 0,
    Handle.LOOP_COMPLETE.value: 0,
    Handle.FALSE.value: 1,
    Handle.LOOP_BODY.value: 1,
}


def sorted_edges(graph: Graph) -> List[WorkflowEdge]:
    """
    Edges grouped by source, each group ordered true/loopComplete first,
    false/loopBody second, everything else after. Groups keep the order in
    which their source first appears in storage.
    """
    groups: Dict[str, List[WorkflowEdge]] = {}
    for edge in graph.edges:
        groups.setdefault(edge.source, []).append(edge)
    ordered: List[WorkflowEdge] = []
    for group in groups.values():
        ordered.extend(sorted(group, key=lambda e: _HANDLE_RANK.get(e.handle, 2)))
    return ordered


class LayeredGraph:
    """
    Ranked, ordered graph with dummy nodes on long edges.

    `layers[r]` lists the node ids in rank r from top (LR) or left (TB).
    Dummy ids are tracked in `dummies` and never leave this module.
    """

    def __init__(self, graph: Graph):
        self.node_ids = graph.node_ids
        known = set(self.node_ids)
        self.edges = [
            e for e in sorted_edges(graph)
            if e.source in known and e.target in known and e.source != e.target
        ]
        self.rank: Dict[str, int] = {}
        self.dummies: Set[str] = set()
        self.successors: Dict[str, List[str]] = {}
        self.predecessors: Dict[str, List[str]] = {}
        self.layers: List[List[str]] = []

        self._assign_ranks(graph)
        self._split_long_edges()
        self._initial_order()

    def _assign_ranks(self, graph: Graph) -> None:
        """Longest path from any source; back edges of a cycle are ignored."""
        order = topological_order(graph)
        index = {node_id: i for i, node_id in enumerate(order)}
        self.rank = {node_id: 0 for node_id in order}
        for node_id in order:
            for edge in self.edges:
                if edge.source == node_id and index[edge.target] > index[node_id]:
                    self.rank[edge.target] = max(self.rank[edge.target], self.rank[node_id] + 1)

    def _link(self, source: str, target: str) -> None:
        self.successors.setdefault(source, []).append(target)
        self.predecessors.setdefault(target, []).append(source)

    def _split_long_edges(self) -> None:
        for node_id in self.node_ids:
            self.successors.setdefault(node_id, [])
            self.predecessors.setdefault(node_id, [])

        for i, edge in enumerate(self.edges):
            span = self.rank[edge.target] - self.rank[edge.source]
            if span <= 0:
                continue
            previous = edge.source
            for step in range(1, span):
                dummy = f"__dummy_{i}_{step}"
                while dummy in self.rank:
                    dummy = "_" + dummy
                self.dummies.add(dummy)
                self.rank[dummy] = self.rank[edge.source] + step
                self.successors[dummy] = []
                self.predecessors[dummy] = []
                self._link(previous, dummy)
                previous = dummy
            self._link(previous, edge.target)

    def _initial_order(self) -> None:
        """Breadth-first from the sources, following edges in sorted order."""
        depth = max(self.rank.values(), default=-1) + 1
        self.layers = [[] for _ in range(depth)]
        seen: Set[str] = set()

        roots = [n for n in self.node_ids if not self.predecessors[n]]
        for root in roots + self.node_ids:
            if root in seen:
                continue
            queue = deque([root])
            seen.add(root)
            while queue:
                current = queue.popleft()
                self.layers[self.rank[current]].append(current)
                for target in self.successors[current]:
                    if target not in seen:
                        seen.add(target)
                        queue.append(target)

    # ------------------------------------------------------------------
    # Crossing minimisation
    # ------------------------------------------------------------------

    def crossings(self, layers: Optional[List[List[str]]] = None) -> int:
        """Total number of edge crossings between adjacent ranks."""
        layers = layers if layers is not None else self.layers
        total = 0
        for upper, lower in zip(layers, layers[1:]):
            lower_pos = {n: i for i, n in enumerate(lower)}
            segments: List[Tuple[int, int]] = []
            for i, node_id in enumerate(upper):
                for target in self.successors[node_id]:
                    if target in lower_pos:
                        segments.append((i, lower_pos[target]))
            for a in range(len(segments)):
                for b in range(a + 1, len(segments)):
                    (u1, v1), (u2, v2) = segments[a], segments[b]
                    if (u1 - u2) * (v1 - v2) < 0:
                        total += 1
        return total

    @staticmethod
    def _reorder(layer: List[str], neighbours: Dict[str, List[str]], fixed: List[str]) -> List[str]:
        """Stable sort of one rank by the barycenter of its neighbours in `fixed`."""
        fixed_pos = {n: i for i, n in enumerate(fixed)}
        keyed = []
        for i, node_id in enumerate(layer):
            positions = [fixed_pos[n] for n in neighbours[node_id] if n in fixed_pos]
            barycenter = sum(positions) / len(positions) if positions else float(i)
            keyed.append((barycenter, i, node_id))
        keyed.sort()
        return [node_id for _, _, node_id in keyed]

    def minimise_crossings(self) -> None:
        """Alternate down/up barycenter sweeps, keeping the best ordering seen."""
        best = [list(layer) for layer in self.layers]
        best_count = self.crossings(best)
        current = [list(layer) for layer in best]
        stale = 0

        for sweep in range(MAX_ORDER_SWEEPS):
            if best_count == 0 or stale >= 4:
                break
            if sweep % 2 == 0:
                for r in range(1, len(current)):
                    current[r] = self._reorder(current[r], self.predecessors, current[r - 1])
            else:
                for r in range(len(current) - 2, -1, -1):
                    current[r] = self._reorder(current[r], self.successors, current[r + 1])
            count = self.crossings(current)
            if count < best_count:
                best = [list(layer) for layer in current]
                best_count = count
                stale = 0
            else:
                stale += 1

        self.layers = best

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def cross_coordinates(self, spacing: float) -> Dict[str, float]:
        """
        Centre coordinate of each node on the cross axis.

        Each rank starts centred on 0, then nodes are pulled toward the
        mean of their neighbours in the previous (down pass) or next (up
        pass) rank while keeping `spacing` between neighbours.
        """
        coord: Dict[str, float] = {}
        for layer in self.layers:
            offset = (len(layer) - 1) / 2
            for i, node_id in enumerate(layer):
                coord[node_id] = (i - offset) * spacing

        for p in range(COORDINATE_PASSES):
            down = p % 2 == 0
            ranks = range(1, len(self.layers)) if down else range(len(self.layers) - 2, -1, -1)
            neighbours = self.predecessors if down else self.successors
            for r in ranks:
                layer = self.layers[r]
                desired = []
                for node_id in layer:
                    linked = [coord[n] for n in neighbours[node_id]]
                    desired.append(sum(linked) / len(linked) if linked else coord[node_id])
                for node_id, value in zip(layer, _separate(desired, spacing)):
                    coord[node_id] = value
        return coord


def _separate(desired: List[float], spacing: float) -> List[float]:
    """
    Closest ordered placement to `desired` with at least `spacing` between
    neighbours: average of packing forward and packing backward.
    """
    if not desired:
        return []
    forward = list(desired)
    for i in range(1, len(forward)):
        forward[i] = max(forward[i], forward[i - 1] + spacing)
    backward = list(desired)
    for i in range(len(backward) - 2, -1, -1):
        backward[i] = min(backward[i], backward[i + 1] - spacing)
    return [(f + b) / 2 for f, b in zip(forward, backward)]


def place_nodes(graph: Graph, options: LayoutOptions) -> Dict[str, Position]:
    """
    Top-left position of every node from the layered placement.

    Coordinates are not normalised; the engine translates the final
    result after the repair pass.
    """
    if not graph.nodes:
        return {}

    layered = LayeredGraph(graph)
    layered.minimise_crossings()
    cross = layered.cross_coordinates(options.cross_spacing)
    logger.debug(
        "Placed %d nodes in %d ranks (%d dummies, %d crossings)",
        len(graph.nodes), len(layered.layers), len(layered.dummies), layered.crossings(),
    )

    positions: Dict[str, Position] = {}
    for node_id in layered.node_ids:
        along = layered.rank[node_id] * options.rank_spacing
        across = cross[node_id]
        if options.rankdir == "LR":
            positions[node_id] = Position(
                x=along - options.node_width / 2,
                y=across - options.node_height / 2,
            )
        else:
            positions[node_id] = Position(
                x=across - options.node_width / 2,
                y=along - options.node_height / 2,
            )
    return positions


__all__ = ["LayeredGraph", "place_nodes", "sorted_edges"]
