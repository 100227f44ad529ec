"""
Layout Engine - placement followed by branch-order repair.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..graph.models import Graph, Position
from .options import LayoutOptions
from .placement import place_nodes
from .repair import repair_branch_order


logger = logging.getLogger(__name__)


def _normalise(graph: Graph) -> Graph:
    """Translate positions so the top-left-most node edge sits at (0, 0)."""
    min_x = min(n.position.x for n in graph.nodes)
    min_y = min(n.position.y for n in graph.nodes)
    if min_x == 0 and min_y == 0:
        return graph
    return graph.with_positions({
        n.id: Position(x=n.position.x - min_x, y=n.position.y - min_y)
        for n in graph.nodes
    })


def layout(graph: Graph, options: Optional[LayoutOptions] = None) -> Graph:
    """
    Return the graph with new node positions.

    Nodes and edges are otherwise unchanged. Positions are top-left
    corners; the result depends only on the graph's structure, never on
    previous positions.
    """
    if not graph.nodes:
        return graph
    options = options or LayoutOptions.from_settings()

    placed = graph.with_positions(place_nodes(graph, options))
    repaired = repair_branch_order(placed, options)
    return _normalise(repaired)


__all__ = ["layout"]
