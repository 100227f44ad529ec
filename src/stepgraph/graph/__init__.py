"""
Workflow graph: value types, validation, numbering and structural edits.
"""

from .models import (
    CONFIG_MODELS,
    EDGE_LABELS,
    NODE_CATALOG,
    SOURCE_HANDLES,
    TRIGGER_TYPES,
    EdgeKind,
    Graph,
    Handle,
    NodeCategory,
    NodeStatus,
    NodeType,
    Position,
    WorkflowEdge,
    WorkflowNode,
    WorkflowSettings,
    new_node,
    parse_config,
    parse_graph,
)
from .mutator import (
    GraphMutationError,
    InsertAnchor,
    delete_node,
    insert_branch_node,
    insert_node,
)
from .numbering import compute_step_labels
from .traversal import (
    ancestors,
    branch_cluster,
    direct_upstream,
    loop_back_edges,
    topological_order,
)
from .validation import (
    ConfigIssue,
    is_well_formed,
    status_for_config,
    structural_problems,
    validate_node_config,
)

__all__ = [
    "CONFIG_MODELS",
    "EDGE_LABELS",
    "NODE_CATALOG",
    "SOURCE_HANDLES",
    "TRIGGER_TYPES",
    "EdgeKind",
    "Graph",
    "Handle",
    "NodeCategory",
    "NodeStatus",
    "NodeType",
    "Position",
    "WorkflowEdge",
    "WorkflowNode",
    "WorkflowSettings",
    "new_node",
    "parse_config",
    "parse_graph",
    "GraphMutationError",
    "InsertAnchor",
    "delete_node",
    "insert_branch_node",
    "insert_node",
    "compute_step_labels",
    "ancestors",
    "branch_cluster",
    "direct_upstream",
    "loop_back_edges",
    "topological_order",
    "ConfigIssue",
    "is_well_formed",
    "status_for_config",
    "structural_problems",
    "validate_node_config",
]
