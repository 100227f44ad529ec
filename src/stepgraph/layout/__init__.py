"""
Layout Engine - deterministic two-pass auto-layout.

This package provides:
- place_nodes: layered (Sugiyama-style) placement
- repair_branch_order: enforces true-above-false / complete-above-body
- layout: both passes, normalised to the origin
"""

from .engine import layout
from .options import LayoutOptions
from .placement import place_nodes
from .repair import branch_order_violations, repair_branch_order

__all__ = [
    "layout",
    "LayoutOptions",
    "place_nodes",
    "branch_order_violations",
    "repair_branch_order",
]
