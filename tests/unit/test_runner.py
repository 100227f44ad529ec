"""Tests for the test-step protocol."""
from unittest.mock import patch

import pytest
import requests

from builders import edge, graph, node
from stepgraph.dry_run import (
    CodeSandbox,
    DryRunExecutor,
    ExecutorRuntime,
    HttpClient,
    HttpConnectivityError,
    NodeExecutionError,
    NodeOutput,
    UpstreamStepError,
    build_context,
    test_step as run_test_step,
)
from stepgraph.graph import NodeStatus


@pytest.fixture
def executor():
    return DryRunExecutor(ExecutorRuntime(http=HttpClient(), sandbox=CodeSandbox()))


def set_node(node_id, **fields):
    return node(node_id, "set_transform", config={
        "fields": [{"name": k, "value": v} for k, v in fields.items()],
    })


@pytest.fixture
def chain():
    """trigger(sample {"id": 7}) -> set B -> set C."""
    return graph(
        [
            node("A", "manual_trigger", config={"sampleData": '{"id": 7}'}),
            set_node("B", uid="{{ $steps[1].json.id }}", fromTrigger="{{ $trigger.json.id }}"),
            set_node("C", copy="{{ $steps[2].json.uid }}"),
        ],
        [edge("A", "B"), edge("B", "C")],
    )


class TestTestStep:
    """Test DryRunExecutor.test_step."""

    def test_runs_untested_ancestors_first(self, executor, chain):
        cache = {}

        result = executor.test_step(chain, "C", cache)

        assert result.is_success
        assert result.output.json == {"copy": 7}
        assert set(cache) == {"A", "B", "C"}
        assert cache["B"].json == {"uid": 7, "fromTrigger": 7}
        assert result.statuses == {
            "A": NodeStatus.TESTED,
            "B": NodeStatus.TESTED,
            "C": NodeStatus.TESTED,
        }

    def test_cached_ancestors_are_reused(self, executor, chain):
        cache = {"A": NodeOutput(json={"id": 99})}

        result = executor.test_step(chain, "B", cache)

        assert result.output.json["uid"] == 99
        assert "A" not in result.statuses

    def test_retest_recomputes_target(self, executor, chain):
        cache = {"A": NodeOutput(json={"id": 1}), "B": NodeOutput(json={"uid": "stale"})}

        result = executor.test_step(chain, "B", cache)

        assert cache["B"].json["uid"] == 1
        assert result.statuses == {"B": NodeStatus.TESTED}

    def test_input_is_direct_upstream_output(self, executor):
        g = graph(
            [
                node("t", "manual_trigger", config={"sampleData": '{"id": 7}'}),
                node("if", "if_condition", config={
                    "conditions": [{"field": "id", "operation": "equals", "value": "7"}],
                }),
            ],
            [edge("t", "if")],
        )

        result = executor.test_step(g, "if", {})

        assert result.output.branch_taken == "true"
        assert result.output.json == {"id": 7}

    @patch("requests.request")
    def test_failing_ancestor_aborts_run(self, mock_request, executor):
        mock_request.side_effect = requests.exceptions.ConnectionError("refused")
        g = graph(
            [
                node("A", "manual_trigger"),
                node("B", "http_request", config={"url": "https://api.example.com"}),
                set_node("C", x="1"),
            ],
            [edge("A", "B"), edge("B", "C")],
        )
        cache = {"C": NodeOutput(json={"x": "old"})}

        result = executor.test_step(g, "C", cache)

        assert result.is_error
        assert isinstance(result.error, UpstreamStepError)
        assert isinstance(result.error.cause, HttpConnectivityError)
        assert result.error.node_id == "C"
        assert "Upstream step 'B' failed" in result.error.user_message
        assert result.statuses == {
            "A": NodeStatus.TESTED,
            "B": NodeStatus.ERROR,
            "C": NodeStatus.ERROR,
        }
        assert set(cache) == {"A"}

    @patch("requests.request")
    def test_failing_target_drops_stale_output(self, mock_request, executor):
        mock_request.side_effect = requests.exceptions.Timeout()
        g = graph(
            [node("A", "manual_trigger"), node("B", "http_request", config={"url": "https://api.example.com"})],
            [edge("A", "B")],
        )
        cache = {"B": NodeOutput(json="old")}

        result = executor.test_step(g, "B", cache)

        assert result.error.kind == "timeout"
        assert result.statuses == {"A": NodeStatus.TESTED, "B": NodeStatus.ERROR}
        assert "B" not in cache

    def test_executor_crash_becomes_execution_error(self, executor):
        g = graph([node("A", "manual_trigger")])

        with patch("stepgraph.dry_run.runner.run_node", side_effect=RuntimeError("boom")):
            result = executor.test_step(g, "A", {})

        assert isinstance(result.error, NodeExecutionError)
        assert result.error.message == "boom"
        assert result.error.node_id == "A"

    def test_unknown_node(self, executor, chain):
        with pytest.raises(KeyError):
            executor.test_step(chain, "ghost", {})

    def test_result_to_dict(self, executor, chain):
        data = executor.test_step(chain, "A", {}).to_dict()

        assert data["nodeId"] == "A"
        assert data["output"] == {"json": {"id": 7}}
        assert data["error"] is None
        assert data["statuses"] == {"A": "tested"}

    def test_module_level_shortcut(self, chain):
        runtime = ExecutorRuntime(http=HttpClient(), sandbox=CodeSandbox())

        assert run_test_step(chain, "A", {}, runtime).is_success


class TestBuildContext:
    """Test the expression context handed to each step."""

    def test_steps_by_label(self, chain):
        cache = {"A": NodeOutput(json={"id": 1}), "B": NodeOutput(json={"uid": 1}, status_code=200)}

        ctx = build_context(chain, "C", cache)

        assert ctx.steps[1] == {"json": {"id": 1}}
        assert ctx.steps["2"] == {"json": {"uid": 1}, "statusCode": 200}
        assert ctx.trigger == {"json": {"id": 1}}
        assert ctx.item is None

    def test_branches_from_if_ancestors(self, branch_graph):
        cache = {
            "trigger": NodeOutput(json={}),
            "if": NodeOutput(json={"status": "ok"}, branch_taken="true"),
        }

        ctx = build_context(branch_graph, "yes", cache)

        assert ctx.branches == {"true": {"status": "ok"}}
        assert ctx.steps["2"]["branch"] == "true"

    def test_loop_item_only_inside_body(self, loop_graph):
        cache = {
            "trigger": NodeOutput(json={}),
            "loop": NodeOutput(json={}, preview_item={"n": 1}, preview_index=0),
            "body1": NodeOutput(json={}),
        }

        body_ctx = build_context(loop_graph, "body2", cache)
        done_ctx = build_context(loop_graph, "done", cache)

        assert body_ctx.item == {"n": 1}
        assert body_ctx.index == 0
        assert done_ctx.item is None
        assert done_ctx.index is None

    def test_loop_preview_reaches_body_step(self, executor):
        g = graph(
            [
                node("t", "manual_trigger", config={"sampleData": '{"items": [{"n": 1}, {"n": 2}]}'}),
                node("loop", "loop", config={"source": "{{ $trigger.json.items }}"}),
                set_node("body", n="{{ $item.n }}", i="{{ $index }}"),
            ],
            [edge("t", "loop"), edge("loop", "body", "loopBody")],
        )

        result = executor.test_step(g, "body", {})

        assert result.output.json == {"n": 1, "i": 0}
