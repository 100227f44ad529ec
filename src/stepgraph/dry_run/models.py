"""
Dry-run result types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..graph.models import NodeStatus
from .errors import DryRunError


@dataclass
class NodeOutput:
    """
    Output of one test-run node, cached per node id.

    `json` is what downstream steps see as their input. The other fields
    are only set by some node types: status/headers by http_request,
    branch_taken by if_condition, preview_item/preview_index by loop.
    """
    json: Any = None
    status_code: Optional[int] = None
    response_headers: Optional[Dict[str, str]] = None
    branch_taken: Optional[str] = None
    preview_item: Any = None
    preview_index: Optional[int] = None

    def to_context(self) -> Dict[str, Any]:
        """Shape exposed to expressions as $steps[N] / $trigger."""
        value: Dict[str, Any] = {"json": self.json}
        if self.status_code is not None:
            value["statusCode"] = self.status_code
        if self.response_headers is not None:
            value["responseHeaders"] = self.response_headers
        if self.branch_taken is not None:
            value["branch"] = self.branch_taken
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON form."""
        value = self.to_context()
        if self.preview_index is not None:
            value["previewItem"] = self.preview_item
            value["previewIndex"] = self.preview_index
        return value


@dataclass
class StepTestResult:
    """
    Result of test_step for one target node.

    Exactly one of `output`/`error` is set. `statuses` holds every status
    change the run produced (ancestors included) for the caller to apply
    to its graph.
    """
    node_id: str
    output: Optional[NodeOutput] = None
    error: Optional[DryRunError] = None
    statuses: Dict[str, NodeStatus] = field(default_factory=dict)
    duration_ms: float = 0

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "output": self.output.to_dict() if self.output else None,
            "error": self.error.to_dict() if self.error else None,
            "statuses": {k: v.value for k, v in self.statuses.items()},
            "durationMs": round(self.duration_ms, 3),
        }


__all__ = ["NodeOutput", "StepTestResult"]
