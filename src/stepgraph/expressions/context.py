"""
Expression context - the variables a dry-run exposes to templates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


def utc_now_iso() -> str:
    """Current time as ISO-8601 UTC with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ExpressionContext:
    """
    Read-only bindings for one evaluation.

    `steps` is keyed by step label: integer labels are reachable as
    $steps[2] and every label (including "2a" or "3.1") as $steps["2a"].
    `branches` holds the outputs recorded by if_condition ancestors under
    "true"/"false".
    """
    trigger: Any = None
    steps: Dict[Union[int, str], Any] = field(default_factory=dict)
    item: Any = None
    index: Optional[int] = None
    now: Optional[str] = None
    branches: Dict[str, Any] = field(default_factory=dict)

    def to_scope(self) -> Dict[str, Any]:
        """Variables as the evaluator sees them."""
        return {
            "$trigger": self.trigger,
            "$steps": self.steps,
            "$item": self.item,
            "$index": self.index,
            "$now": self.now or utc_now_iso(),
            "$branches": self.branches,
        }


__all__ = ["ExpressionContext", "utc_now_iso"]
