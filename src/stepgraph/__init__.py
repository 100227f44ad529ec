"""
stepgraph - graph engine for a visual workflow editor.

This package provides:
- Graph / parse_graph: immutable workflow graph values
- insert_node / insert_branch_node / delete_node: structural edits
- compute_step_labels: hierarchical step numbering
- layout: deterministic auto-layout with branch-order repair
- resolve_template / resolve_config: {{ expr }} templates
- test_step: per-node dry runs
- EditorSession: one workflow's graph plus its test outputs

All execution is synchronous.
"""

from .dry_run import DryRunExecutor, NodeOutput, StepTestResult, test_step
from .expressions import ExpressionContext, resolve_config, resolve_template
from .graph import (
    Graph,
    GraphMutationError,
    InsertAnchor,
    NodeStatus,
    NodeType,
    WorkflowEdge,
    WorkflowNode,
    compute_step_labels,
    delete_node,
    insert_branch_node,
    insert_node,
    new_node,
    parse_graph,
)
from .layout import LayoutOptions, layout
from .session import EditorSession

__version__ = "0.1.0"

__all__ = [
    # Graph
    "Graph",
    "WorkflowNode",
    "WorkflowEdge",
    "NodeType",
    "NodeStatus",
    "new_node",
    "parse_graph",
    # Edits
    "GraphMutationError",
    "InsertAnchor",
    "insert_node",
    "insert_branch_node",
    "delete_node",
    # Numbering and layout
    "compute_step_labels",
    "LayoutOptions",
    "layout",
    # Expressions
    "ExpressionContext",
    "resolve_template",
    "resolve_config",
    # Dry run
    "DryRunExecutor",
    "NodeOutput",
    "StepTestResult",
    "test_step",
    # Session
    "EditorSession",
]
