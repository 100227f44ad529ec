"""Observability package."""
from stepgraph.observability.logging import (
    CustomJsonFormatter,
    NodeContextFilter,
    setup_logging,
    with_node_context,
)

__all__ = ["CustomJsonFormatter", "NodeContextFilter", "setup_logging", "with_node_context"]
