"""
Graph Mutator - the only structural edits a workflow graph goes through.

Each operation is a pure function of (graph, args): the input Graph is
never touched and a brand-new Graph is returned. Bad arguments raise
GraphMutationError before anything is built, so an edit either applies
completely or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Set

from .models import (
    EDGE_LABELS,
    EdgeKind,
    Graph,
    Handle,
    MergeConfig,
    NodeStatus,
    NodeType,
    SOURCE_HANDLES,
    WorkflowEdge,
    WorkflowNode,
    edge_kind_for_handle,
    new_node,
)


logger = logging.getLogger(__name__)


class GraphMutationError(ValueError):
    """Raised when a mutation's arguments do not fit the graph."""


_UNSET = object()


@dataclass(frozen=True)
class InsertAnchor:
    """
    Where a new node goes.

    source_id/source_handle name the output the new node hangs off;
    target_id, when set, names the node currently on the other end of
    that output (the edge between them is split).
    """
    source_id: Optional[str] = None
    source_handle: str = Handle.MAIN.value
    target_id: Optional[str] = None


def edge_id(source: str, handle: str, target: str, taken: Iterable[str] = ()) -> str:
    """Deterministic edge id, suffixed when it collides with an existing one."""
    base = f"e-{source}-{handle}-{target}"
    taken_ids = set(taken)
    if base not in taken_ids:
        return base
    n = 2
    while f"{base}-{n}" in taken_ids:
        n += 1
    return f"{base}-{n}"


class _EdgeBuilder:
    """Collects new edges, keeping ids unique against the graph's and each other."""

    def __init__(self, existing: Iterable[WorkflowEdge]):
        self.taken: Set[str] = {e.id for e in existing}
        self.edges: List[WorkflowEdge] = []

    def add(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        kind: Optional[EdgeKind] = None,
        label: Any = _UNSET,
    ) -> WorkflowEdge:
        handle = source_handle or Handle.MAIN.value
        edge = WorkflowEdge(
            id=edge_id(source, handle, target, self.taken),
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
            kind=kind if kind is not None else edge_kind_for_handle(handle),
            label=EDGE_LABELS.get(handle) if label is _UNSET else label,
        )
        self.taken.add(edge.id)
        self.edges.append(edge)
        return edge


def _continuation_handle(node: WorkflowNode) -> str:
    """Output that carries the flow on to whatever followed the insertion point."""
    if node.type == NodeType.LOOP:
        return Handle.LOOP_COMPLETE.value
    if node.type == NodeType.IF_CONDITION:
        raise GraphMutationError(
            "an if_condition splitting an edge needs a merge; use insert_branch_node"
        )
    return Handle.MAIN.value


def _check_anchor(graph: Graph, node: WorkflowNode, anchor: Optional[InsertAnchor]) -> Optional[WorkflowEdge]:
    """
    Validate an insertion and return the edge being split, if any.
    """
    if graph.get_node(node.id) is not None:
        raise GraphMutationError(f"node id '{node.id}' already exists")

    if anchor is None or anchor.source_id is None:
        if graph.nodes:
            raise GraphMutationError("a source node is required when the graph is not empty")
        return None

    source = graph.get_node(anchor.source_id)
    if source is None:
        raise GraphMutationError(f"unknown source node '{anchor.source_id}'")
    allowed = SOURCE_HANDLES.get(source.type, (Handle.MAIN.value,))
    if anchor.source_handle not in allowed:
        raise GraphMutationError(
            f"{source.type.value} node '{source.id}' has no '{anchor.source_handle}' output"
        )

    on_handle = [e for e in graph.outgoing_edges(source.id) if e.handle == anchor.source_handle]
    if anchor.target_id is None:
        if on_handle:
            raise GraphMutationError(
                f"output '{anchor.source_handle}' of '{source.id}' is already connected "
                f"to '{on_handle[0].target}'"
            )
        return None

    split = [e for e in on_handle if e.target == anchor.target_id]
    if len(split) != 1:
        raise GraphMutationError(
            f"no edge '{source.id}' --{anchor.source_handle}--> '{anchor.target_id}' to insert into"
        )
    return split[0]


def _link_from_source(builder: _EdgeBuilder, anchor: InsertAnchor, node_id: str, split: Optional[WorkflowEdge]) -> None:
    """Edge from the anchor's source to the new node."""
    if split is not None:
        builder.add(
            split.source, node_id,
            source_handle=split.source_handle,
            kind=split.kind,
            label=split.label,
        )
    else:
        handle = anchor.source_handle
        builder.add(
            anchor.source_id, node_id,
            source_handle=None if handle == Handle.MAIN.value else handle,
        )


def insert_node(graph: Graph, node: WorkflowNode, anchor: Optional[InsertAnchor] = None) -> Graph:
    """
    Add a node after `anchor.source_id`.

    - No source: only allowed on an empty graph; the node is added alone.
    - No target: the node is appended on the source's free output.
    - Target: the source -> target edge is split into source -> node -> target.
      The source side keeps the split edge's handle, kind and label; the
      target side keeps its target handle.
    """
    split = _check_anchor(graph, node, anchor)
    if anchor is None or anchor.source_id is None:
        logger.debug("Added first node %s", node.id)
        return graph.model_copy(update={"nodes": graph.nodes + (node,)})

    continuation = _continuation_handle(node) if split is not None else None

    builder = _EdgeBuilder(graph.edges)
    _link_from_source(builder, anchor, node.id, split)
    if split is not None:
        builder.add(
            node.id, split.target,
            source_handle=None if continuation == Handle.MAIN.value else continuation,
            target_handle=split.target_handle,
        )

    kept = tuple(e for e in graph.edges if split is None or e.id != split.id)
    logger.debug(
        "Inserted %s after %s (%s)%s",
        node.id, anchor.source_id, anchor.source_handle,
        f", before {anchor.target_id}" if split is not None else "",
    )
    return graph.model_copy(update={
        "nodes": graph.nodes + (node,),
        "edges": kept + tuple(builder.edges),
    })


def insert_branch_node(graph: Graph, if_node: WorkflowNode, anchor: Optional[InsertAnchor] = None) -> Graph:
    """
    Insert an if_condition together with the merge that closes it.

    The merge (id "<if id>-merge") receives the true output on its branchA
    input and the false output on branchB. When the anchor split an edge,
    the merge takes over the continuation to the old target: 4 new edges,
    or 3 when there was no target.
    """
    if if_node.type != NodeType.IF_CONDITION:
        raise GraphMutationError(f"insert_branch_node needs an if_condition, got {if_node.type.value}")
    split = _check_anchor(graph, if_node, anchor)

    taken = set(graph.node_ids) | {if_node.id}
    merge_id = f"{if_node.id}-merge"
    n = 2
    while merge_id in taken:
        merge_id = f"{if_node.id}-merge-{n}"
        n += 1
    merge = new_node(
        NodeType.MERGE,
        merge_id,
        config=MergeConfig(strategy="append"),
        status=NodeStatus.CONFIGURED,
    ).model_copy(update={"position": if_node.position})

    builder = _EdgeBuilder(graph.edges)
    if anchor is not None and anchor.source_id is not None:
        _link_from_source(builder, anchor, if_node.id, split)
    builder.add(
        if_node.id, merge.id,
        source_handle=Handle.TRUE.value,
        target_handle=Handle.BRANCH_A.value,
    )
    builder.add(
        if_node.id, merge.id,
        source_handle=Handle.FALSE.value,
        target_handle=Handle.BRANCH_B.value,
    )
    if split is not None:
        builder.add(merge.id, split.target, target_handle=split.target_handle)

    kept = tuple(e for e in graph.edges if split is None or e.id != split.id)
    logger.debug("Inserted branch %s with merge %s", if_node.id, merge.id)
    return graph.model_copy(update={
        "nodes": graph.nodes + (if_node, merge),
        "edges": kept + tuple(builder.edges),
    })


def delete_node(graph: Graph, node_id: str) -> Graph:
    """
    Remove a node and bridge over it.

    For every (incoming, outgoing) pair one edge
    incoming.source -> outgoing.target is added, carrying the incoming
    edge's handle, kind and label and the outgoing edge's target handle.
    k incoming and j outgoing edges give k*j bridges.
    """
    if graph.get_node(node_id) is None:
        raise GraphMutationError(f"unknown node '{node_id}'")

    incoming = graph.incoming_edges(node_id)
    outgoing = graph.outgoing_edges(node_id)
    kept = tuple(e for e in graph.edges if e.source != node_id and e.target != node_id)

    builder = _EdgeBuilder(kept)
    for inc in incoming:
        for out in outgoing:
            builder.add(
                inc.source, out.target,
                source_handle=inc.source_handle,
                target_handle=out.target_handle,
                kind=inc.kind,
                label=inc.label,
            )

    logger.debug(
        "Deleted %s (%d in, %d out, %d bridged)",
        node_id, len(incoming), len(outgoing), len(builder.edges),
    )
    return graph.model_copy(update={
        "nodes": tuple(n for n in graph.nodes if n.id != node_id),
        "edges": kept + tuple(builder.edges),
    })


__all__ = [
    "GraphMutationError",
    "InsertAnchor",
    "edge_id",
    "insert_node",
    "insert_branch_node",
    "delete_node",
]
