"""
Layout options.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from ..config import Settings, get_settings


@dataclass(frozen=True)
class LayoutOptions:
    """
    Geometry for the layered layout.

    rankdir "LR" puts ranks along x (flow reads left to right) and the
    order within a rank along y; "TB" swaps the two. The cross axis is the
    one branch-ordering rules are checked on.
    """
    rankdir: Literal["LR", "TB"] = "LR"
    nodesep: float = 80
    ranksep: float = 250
    node_width: float = 220
    node_height: float = 80

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LayoutOptions":
        settings = settings or get_settings()
        return cls(
            rankdir=settings.layout_rankdir,
            nodesep=settings.layout_nodesep,
            ranksep=settings.layout_ranksep,
            node_width=settings.node_width,
            node_height=settings.node_height,
        )

    @property
    def rank_size(self) -> float:
        """Node extent along the rank axis."""
        return self.node_width if self.rankdir == "LR" else self.node_height

    @property
    def cross_size(self) -> float:
        """Node extent along the cross axis."""
        return self.node_height if self.rankdir == "LR" else self.node_width

    @property
    def cross_spacing(self) -> float:
        """Minimum centre-to-centre distance of neighbours in one rank."""
        return self.cross_size + self.nodesep

    @property
    def rank_spacing(self) -> float:
        """Centre-to-centre distance between consecutive ranks."""
        return self.rank_size + self.ranksep


__all__ = ["LayoutOptions"]
