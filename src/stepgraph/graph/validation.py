"""
Graph and config validation.

is_well_formed() checks the structural invariants every mutation must
keep. validate_node_config() checks a node's config against its type's
"ready to run" predicate and reports field-level issues; it never raises.
"""

from __future__ import annotations

import keyword
import logging
from dataclasses import dataclass
from typing import Dict, List, Set, Tuple

from .models import (
    CodeConfig,
    Graph,
    Handle,
    HttpRequestConfig,
    IfConditionConfig,
    IntegrationConfig,
    LoopConfig,
    NodeStatus,
    ScheduleTriggerConfig,
    SetTransformConfig,
    SOURCE_HANDLES,
    WaitConfig,
    WebhookTriggerConfig,
    WorkflowNode,
)


logger = logging.getLogger(__name__)


# ==============================================================================
# Structure
# ==============================================================================

def structural_problems(graph: Graph) -> List[str]:
    """
    List every violated structural invariant (empty when well-formed).

    Checks:
    - node ids and edge ids are unique
    - edges reference existing nodes
    - source handles are valid for the source node's type
    - at most one outgoing edge per (source, handle)
    - no cycles among stored edges
    """
    problems: List[str] = []
    nodes = {}
    for node in graph.nodes:
        if node.id in nodes:
            problems.append(f"duplicate node id '{node.id}'")
        nodes[node.id] = node

    edge_ids: Set[str] = set()
    used_handles: Set[Tuple[str, str]] = set()
    for edge in graph.edges:
        if edge.id in edge_ids:
            problems.append(f"duplicate edge id '{edge.id}'")
        edge_ids.add(edge.id)

        source = nodes.get(edge.source)
        if source is None:
            problems.append(f"edge '{edge.id}' has unknown source '{edge.source}'")
            continue
        if edge.target not in nodes:
            problems.append(f"edge '{edge.id}' has unknown target '{edge.target}'")
            continue

        allowed = SOURCE_HANDLES.get(source.type, (Handle.MAIN.value,))
        if edge.handle not in allowed:
            problems.append(
                f"edge '{edge.id}' uses handle '{edge.handle}' not offered by {source.type.value}"
            )
        if (edge.source, edge.handle) in used_handles:
            problems.append(f"node '{edge.source}' has more than one '{edge.handle}' edge")
        used_handles.add((edge.source, edge.handle))

    cycle = _find_cycle_members(graph, set(nodes))
    if cycle:
        problems.append(f"graph has cycles involving: {sorted(cycle)}")

    return problems


def _find_cycle_members(graph: Graph, node_ids: Set[str]) -> Set[str]:
    """Kahn's algorithm; whatever never reaches in-degree 0 sits on a cycle."""
    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    successors: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for edge in graph.edges:
        if edge.source in node_ids and edge.target in node_ids:
            successors[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    queue = [node_id for node_id, degree in in_degree.items() if degree == 0]
    visited = 0
    while queue:
        current = queue.pop()
        visited += 1
        for target in successors[current]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    if visited == len(node_ids):
        return set()
    return {node_id for node_id, degree in in_degree.items() if degree > 0}


def is_well_formed(graph: Graph) -> bool:
    """True when the graph satisfies every structural invariant."""
    problems = structural_problems(graph)
    if problems:
        logger.debug("Graph is not well-formed: %s", "; ".join(problems))
    return not problems


# ==============================================================================
# Config
# ==============================================================================

@dataclass(frozen=True)
class ConfigIssue:
    """A field-level validation message shown next to the offending input."""
    field: str
    message: str


def _blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_node_config(node: WorkflowNode) -> List[ConfigIssue]:
    """Return the reasons a node cannot run yet (empty when configured)."""
    config = node.config

    if isinstance(config, WebhookTriggerConfig):
        return [ConfigIssue("path", "Webhook path is required")] if _blank(config.path) else []

    if isinstance(config, ScheduleTriggerConfig):
        if config.preset == "custom" and _blank(config.cron):
            return [ConfigIssue("cron", "A cron expression is required for a custom schedule")]
        return []

    if isinstance(config, HttpRequestConfig):
        return [ConfigIssue("url", "URL is required")] if _blank(config.url) else []

    if isinstance(config, IfConditionConfig):
        if any(not _blank(row.field) and not _blank(row.operation) for row in config.conditions):
            return []
        return [ConfigIssue("conditions", "Add at least one condition with a field")]

    if isinstance(config, SetTransformConfig):
        if any(not _blank(field.name) for field in config.fields):
            return []
        return [ConfigIssue("fields", "Add at least one named field")]

    if isinstance(config, CodeConfig):
        issues = [ConfigIssue("code", "Code is required")] if _blank(config.code) else []
        for mapping in config.input_mappings:
            name = mapping.name.strip()
            if name and (not name.isidentifier() or keyword.iskeyword(name)):
                issues.append(ConfigIssue("inputMappings", f"'{name}' is not a valid variable name"))
        return issues

    if isinstance(config, LoopConfig):
        if config.mode == "forEach":
            return [ConfigIssue("source", "Choose the list to iterate over")] if _blank(config.source) else []
        return [ConfigIssue("count", "Set how many times to repeat")] if _blank(config.count) else []

    if isinstance(config, WaitConfig):
        if config.mode == "duration" and not (config.duration_value or 0) > 0:
            return [ConfigIssue("durationValue", "Duration must be greater than zero")]
        return []

    if isinstance(config, IntegrationConfig) and _blank(config.credential_id):
        return [ConfigIssue("credentialId", "Select a credential")]

    # manual trigger and merge need nothing
    return []


def status_for_config(node: WorkflowNode) -> NodeStatus:
    """
    Status after a config edit.

    Any edit demotes a tested/error node; re-test is always required.
    """
    if validate_node_config(node):
        return NodeStatus.UNCONFIGURED
    return NodeStatus.CONFIGURED


__all__ = [
    "structural_problems",
    "is_well_formed",
    "ConfigIssue",
    "validate_node_config",
    "status_for_config",
]
