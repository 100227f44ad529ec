"""
Editor Session - single owner of one workflow's graph and test outputs.

All structural edits go through the mutator functions; after each one
the session relayouts the graph and recomputes step labels. Readers get
the current Graph value, which is immutable, so a snapshot handed out
before an edit never changes under them.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Literal, Optional

from .dry_run.executors import ExecutorRuntime
from .dry_run.models import NodeOutput, StepTestResult
from .dry_run.runner import DryRunExecutor
from .graph.models import Graph, WorkflowEdge, WorkflowNode, parse_config, parse_graph
from .graph.mutator import InsertAnchor, delete_node, insert_branch_node, insert_node
from .graph.numbering import compute_step_labels
from .graph.traversal import loop_back_edges
from .graph.validation import ConfigIssue, status_for_config, validate_node_config
from .layout import LayoutOptions, layout
from .observability import with_node_context


logger = logging.getLogger(__name__)


class EditorSession:
    """
    Editing session for one workflow.

    Usage:
        session = EditorSession()
        session.insert_node(new_node("manual_trigger", "t1"))
        session.insert_node(new_node("http_request", "h1"), InsertAnchor("t1"))
        result = session.test_step("h1")
    """

    def __init__(
        self,
        graph: Optional[Graph] = None,
        workflow_id: Optional[str] = None,
        layout_options: Optional[LayoutOptions] = None,
        runtime: Optional[ExecutorRuntime] = None,
    ):
        self.session_id = uuid.uuid4().hex
        self.workflow_id = workflow_id
        self._layout_options = layout_options
        self._executor = DryRunExecutor(runtime)
        self._outputs: Dict[str, NodeOutput] = {}
        self._graph = Graph()
        self._labels: Dict[str, str] = {}
        if graph is not None:
            self.load(graph, workflow_id)

    def _log_extra(self, node: Optional[WorkflowNode] = None) -> Dict[str, Any]:
        return with_node_context(
            node_id=node.id if node else None,
            node_type=node.type.value if node else None,
            workflow_id=self.workflow_id,
            session_id=self.session_id,
        )

    # ------------------------------------------------------------------
    # Graph snapshot
    # ------------------------------------------------------------------

    @property
    def graph(self) -> Graph:
        """Current graph value."""
        return self._graph

    @property
    def step_labels(self) -> Dict[str, str]:
        """Step label per node id for the current graph."""
        return dict(self._labels)

    @property
    def loop_back_edges(self) -> List[WorkflowEdge]:
        """Derived loop-back edges for drawing; never stored in the graph."""
        return loop_back_edges(self._graph)

    def load(self, graph: Graph | Dict[str, Any], workflow_id: Optional[str] = None) -> Graph:
        """Replace the graph wholesale; every cached output is dropped."""
        if not isinstance(graph, Graph):
            graph = parse_graph(graph)
        if workflow_id is not None:
            self.workflow_id = workflow_id
        self._outputs.clear()
        self._graph = graph
        self._labels = compute_step_labels(graph)
        logger.info("Loaded graph with %d nodes", len(graph.nodes), extra=self._log_extra())
        return self._graph

    def _commit(self, graph: Graph, relayout: bool = True) -> Graph:
        if relayout:
            graph = layout(graph, self._layout_options)
        self._graph = graph
        self._labels = compute_step_labels(graph)
        return graph

    def _require(self, node_id: str) -> WorkflowNode:
        node = self._graph.get_node(node_id)
        if node is None:
            raise KeyError(node_id)
        return node

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def insert_node(self, node: WorkflowNode, anchor: Optional[InsertAnchor] = None) -> Graph:
        graph = insert_node(self._graph, node, anchor)
        logger.debug("Inserted node", extra=self._log_extra(node))
        return self._commit(graph)

    def insert_branch_node(self, if_node: WorkflowNode, anchor: Optional[InsertAnchor] = None) -> Graph:
        graph = insert_branch_node(self._graph, if_node, anchor)
        logger.debug("Inserted branch", extra=self._log_extra(if_node))
        return self._commit(graph)

    def delete_node(self, node_id: str) -> Graph:
        node = self._require(node_id)
        graph = delete_node(self._graph, node_id)
        self._outputs.pop(node_id, None)
        logger.debug("Deleted node", extra=self._log_extra(node))
        return self._commit(graph)

    # ------------------------------------------------------------------
    # Node edits (no structural change, no relayout)
    # ------------------------------------------------------------------

    def update_node_config(self, node_id: str, config: Any) -> List[ConfigIssue]:
        """
        Replace a node's config.

        The status drops back to configured, or unconfigured when the new
        config fails validation, and the node's cached output is dropped.
        Returns the validation issues (empty when configured).
        """
        node = self._require(node_id)
        updated = node.model_copy(update={"config": parse_config(node.type, config)})
        updated = updated.model_copy(update={"status": status_for_config(updated)})
        self._outputs.pop(node_id, None)
        self._commit(self._graph.replace_node(updated), relayout=False)
        logger.debug("Updated config (status %s)", updated.status.value, extra=self._log_extra(updated))
        return validate_node_config(updated)

    def update_error_handling(
        self,
        node_id: str,
        on_error: Optional[Literal["stop", "continue", "retry"]] = None,
        retry_count: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
    ) -> WorkflowNode:
        """Store the node's error-handling settings (used by the production runtime only)."""
        node = self._require(node_id)
        updated = WorkflowNode.model_validate({
            **node.model_dump(),
            "config": node.config,
            "on_error": on_error,
            "retry_count": retry_count,
            "retry_delay_ms": retry_delay_ms,
        })
        self._commit(self._graph.replace_node(updated), relayout=False)
        return updated

    def set_disabled(self, node_id: str, disabled: bool = True) -> WorkflowNode:
        node = self._require(node_id)
        updated = node.model_copy(update={"disabled": disabled})
        self._commit(self._graph.replace_node(updated), relayout=False)
        return updated

    # ------------------------------------------------------------------
    # Test runs
    # ------------------------------------------------------------------

    def test_step(self, node_id: str) -> StepTestResult:
        """Test a node and apply the resulting status changes to the graph."""
        self._require(node_id)
        result = self._executor.test_step(self._graph, node_id, self._outputs)
        if result.statuses:
            self._commit(self._graph.with_statuses(result.statuses), relayout=False)
        return result

    def output_for(self, node_id: str) -> Optional[NodeOutput]:
        return self._outputs.get(node_id)

    def clear_outputs(self) -> None:
        self._outputs.clear()

    def to_dict(self) -> Dict[str, Any]:
        """Graph plus labels and cached outputs, for the view layer."""
        return {
            "workflowId": self.workflow_id,
            "graph": self._graph.to_dict(),
            "stepLabels": self.step_labels,
            "outputs": {k: v.to_dict() for k, v in self._outputs.items()},
        }


__all__ = ["EditorSession"]
