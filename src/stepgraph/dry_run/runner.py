"""
Dry-Run Executor - "test this step" for a single node.

Runs every ancestor that has no cached output yet, strictly one after
another in trigger-first order, then the node itself. Each step sees the
output of its direct upstream node as input and an ExpressionContext
built from everything computed so far.

SYNC: the only blocking points are the HTTP and code executors, each
bounded by its own timeout.
"""

from __future__ import annotations

import logging
import time
import traceback
from typing import Dict, Mapping, MutableMapping, Optional

from ..expressions import ExpressionContext, utc_now_iso
from ..graph.models import Graph, Handle, NodeStatus, NodeType
from ..graph.numbering import compute_step_labels
from ..graph.traversal import ancestors, branch_cluster, direct_upstream
from ..observability import with_node_context
from .errors import DryRunError, NodeExecutionError, UpstreamStepError
from .executors import ExecutorRuntime, run_node
from .models import NodeOutput, StepTestResult


logger = logging.getLogger(__name__)

OutputCache = MutableMapping[str, NodeOutput]


def build_context(
    graph: Graph,
    node_id: str,
    cache: Mapping[str, NodeOutput],
    labels: Optional[Dict[str, str]] = None,
    now: Optional[str] = None,
) -> ExpressionContext:
    """
    Expression context for running `node_id`.

    - $steps: every cached output by step label ($steps[2], $steps["2a"])
    - $trigger: the output of the trigger this node descends from
    - $branches: outputs of tested if_condition ancestors, by branch taken
    - $item/$index: preview item of the nearest loop whose body holds the node
    """
    labels = labels if labels is not None else compute_step_labels(graph)
    chain = ancestors(graph, node_id)

    steps: Dict = {}
    for nid, label in labels.items():
        output = cache.get(nid)
        if output is None:
            continue
        value = output.to_context()
        steps[label] = value
        if label.isdigit():
            steps[int(label)] = value

    trigger = None
    for nid in chain:
        node = graph.get_node(nid)
        if node is not None and node.is_trigger and nid in cache:
            trigger = cache[nid].to_context()
            break

    branches: Dict[str, object] = {}
    item = None
    index = None
    for nid in chain:
        node = graph.get_node(nid)
        output = cache.get(nid)
        if node is None or output is None:
            continue
        if node.type == NodeType.IF_CONDITION and output.branch_taken:
            branches[output.branch_taken] = output.json
        elif node.type == NodeType.LOOP and output.preview_index is not None:
            if node_id in branch_cluster(graph, nid, Handle.LOOP_BODY.value):
                item = output.preview_item
                index = output.preview_index

    return ExpressionContext(
        trigger=trigger,
        steps=steps,
        item=item,
        index=index,
        now=now or utc_now_iso(),
        branches=branches,
    )


class DryRunExecutor:
    """
    Runs test steps against a per-session output cache.

    The cache (node id -> NodeOutput) is written here and nowhere else.
    Failures never escape test_step; they come back in the result.
    """

    def __init__(self, runtime: Optional[ExecutorRuntime] = None):
        self.runtime = runtime or ExecutorRuntime.from_settings()

    def _run(self, graph: Graph, node_id: str, cache: OutputCache, labels: Dict[str, str]) -> NodeOutput:
        node = graph.get_node(node_id)
        upstream = direct_upstream(graph, node_id)
        input_data = cache[upstream].json if upstream in cache else None
        ctx = build_context(graph, node_id, cache, labels)
        try:
            return run_node(node, input_data, ctx, self.runtime)
        except DryRunError as e:
            if e.node_id is None:
                e.node_id = node_id
            raise
        except Exception as e:
            logger.error(
                "Executor for %s crashed: %s\n%s", node_id, e, traceback.format_exc(),
                extra=with_node_context(node_id=node_id, node_type=node.type.value),
            )
            raise NodeExecutionError(str(e) or type(e).__name__, node_id=node_id) from e

    def test_step(self, graph: Graph, node_id: str, cache: OutputCache) -> StepTestResult:
        """
        Test one node, running untested ancestors first.

        A failing ancestor aborts the run: it is marked error, the target
        is marked error with an UpstreamStepError, and outputs cached
        before the failure are kept.

        Raises:
            KeyError: If node_id is not in the graph
        """
        target = graph.get_node(node_id)
        if target is None:
            raise KeyError(node_id)

        start_time = time.perf_counter()
        labels = compute_step_labels(graph)
        statuses: Dict[str, NodeStatus] = {}
        extra = with_node_context(node_id=node_id, node_type=target.type.value)
        logger.info("Testing step %s", labels.get(node_id, node_id), extra=extra)

        for ancestor_id in ancestors(graph, node_id):
            if ancestor_id in cache:
                continue
            try:
                cache[ancestor_id] = self._run(graph, ancestor_id, cache, labels)
                statuses[ancestor_id] = NodeStatus.TESTED
            except DryRunError as e:
                statuses[ancestor_id] = NodeStatus.ERROR
                statuses[node_id] = NodeStatus.ERROR
                cache.pop(node_id, None)
                error = UpstreamStepError(e, node_id=node_id)
                logger.warning("Step %s not run: %s", node_id, error.user_message, extra=extra)
                return StepTestResult(
                    node_id=node_id,
                    error=error,
                    statuses=statuses,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                )

        try:
            output = self._run(graph, node_id, cache, labels)
        except DryRunError as e:
            statuses[node_id] = NodeStatus.ERROR
            cache.pop(node_id, None)
            logger.warning("Step %s failed (%s): %s", node_id, e.kind, e.user_message, extra=extra)
            return StepTestResult(
                node_id=node_id,
                error=e,
                statuses=statuses,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        cache[node_id] = output
        statuses[node_id] = NodeStatus.TESTED
        duration = (time.perf_counter() - start_time) * 1000
        logger.info("Step %s tested in %.1fms", node_id, duration, extra=extra)
        return StepTestResult(node_id=node_id, output=output, statuses=statuses, duration_ms=duration)


def test_step(
    graph: Graph,
    node_id: str,
    cache: OutputCache,
    runtime: Optional[ExecutorRuntime] = None,
) -> StepTestResult:
    """Module-level shortcut for DryRunExecutor(runtime).test_step(...)."""
    return DryRunExecutor(runtime).test_step(graph, node_id, cache)


# Not a test function, despite the name
test_step.__test__ = False


__all__ = ["build_context", "DryRunExecutor", "test_step", "OutputCache"]
