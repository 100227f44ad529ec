"""Tests for EditorSession."""
import pytest
from pydantic import ValidationError

from builders import edge, node
from stepgraph import EditorSession, InsertAnchor, LayoutOptions, new_node
from stepgraph.dry_run import CodeSandbox, ExecutorRuntime, HttpClient, NodeOutput
from stepgraph.graph import NodeStatus, is_well_formed


@pytest.fixture
def session():
    return EditorSession(
        workflow_id="wf-1",
        layout_options=LayoutOptions(),
        runtime=ExecutorRuntime(http=HttpClient(), sandbox=CodeSandbox()),
    )


@pytest.fixture
def built(session):
    """trigger -> set, built through the session."""
    session.insert_node(new_node("manual_trigger", "t", config={"sampleData": '{"name": "Ada"}'}))
    session.insert_node(
        new_node("set_transform", "s", config={"fields": [{"name": "who", "value": "{{ $steps[1].json.name }}"}]}),
        InsertAnchor("t"),
    )
    return session


class TestStructuralEdits:
    """Every structural edit relayouts and renumbers."""

    def test_insert_updates_labels_and_positions(self, built):
        graph = built.graph

        assert built.step_labels == {"t": "1", "s": "2"}
        assert graph.get_node("s").position.x > graph.get_node("t").position.x
        assert is_well_formed(graph)

    def test_snapshot_never_changes(self, built):
        before = built.graph

        built.insert_node(new_node("code", "c"), InsertAnchor("s"))

        assert before.node_ids == ["t", "s"]
        assert built.graph.node_ids == ["t", "s", "c"]

    def test_insert_branch(self, built):
        built.insert_branch_node(new_node("if_condition", "i"), InsertAnchor("t", target_id="s"))

        labels = built.step_labels
        assert labels == {"t": "1", "i": "2", "i-merge": "2a", "s": "3"}

    def test_delete_drops_cached_output(self, built):
        built.test_step("s")

        built.delete_node("s")

        assert built.output_for("s") is None
        assert built.output_for("t") is not None
        assert built.graph.node_ids == ["t"]

    def test_unknown_node(self, built):
        with pytest.raises(KeyError):
            built.delete_node("ghost")

    def test_loop_back_edges_are_derived(self, session):
        session.load({
            "nodes": [node("t", "manual_trigger"), node("l", "loop"), node("b")],
            "edges": [edge("t", "l"), edge("l", "b", "loopBody")],
        })

        (back,) = session.loop_back_edges

        assert (back.source, back.target) == ("b", "l")
        assert len(session.graph.edges) == 2


class TestNodeEdits:
    def test_config_edit_demotes_status_and_drops_output(self, built):
        built.test_step("s")
        assert built.graph.get_node("s").status == NodeStatus.TESTED

        issues = built.update_node_config("s", {"fields": [{"name": "x", "value": "1"}]})

        assert issues == []
        assert built.graph.get_node("s").status == NodeStatus.CONFIGURED
        assert built.output_for("s") is None

    def test_invalid_config_is_unconfigured(self, built):
        issues = built.update_node_config("s", {"fields": []})

        assert [i.field for i in issues] == ["fields"]
        assert built.graph.get_node("s").status == NodeStatus.UNCONFIGURED

    def test_config_edit_keeps_positions(self, built):
        position = built.graph.get_node("s").position

        built.update_node_config("s", {"fields": []})

        assert built.graph.get_node("s").position == position

    def test_error_handling(self, built):
        updated = built.update_error_handling("s", on_error="retry", retry_count=3, retry_delay_ms=500)

        assert updated.on_error == "retry"
        assert built.graph.get_node("s").retry_count == 3
        assert built.graph.get_node("s").config == updated.config

    def test_error_handling_rejects_negative_retries(self, built):
        with pytest.raises(ValidationError):
            built.update_error_handling("s", retry_count=-1)

    def test_set_disabled(self, built):
        built.set_disabled("s")

        assert built.graph.get_node("s").disabled is True


class TestTestRuns:
    def test_statuses_applied_to_graph(self, built):
        result = built.test_step("s")

        assert result.output.json == {"who": "Ada"}
        assert built.graph.get_node("t").status == NodeStatus.TESTED
        assert built.graph.get_node("s").status == NodeStatus.TESTED

    def test_load_clears_outputs(self, built):
        built.test_step("s")

        built.load(built.graph, workflow_id="wf-2")

        assert built.output_for("t") is None
        assert built.workflow_id == "wf-2"

    def test_clear_outputs(self, built):
        built.test_step("t")

        built.clear_outputs()

        assert built.output_for("t") is None

    def test_to_dict(self, built):
        built.test_step("t")

        data = built.to_dict()

        assert data["workflowId"] == "wf-1"
        assert data["stepLabels"] == {"t": "1", "s": "2"}
        assert data["outputs"] == {"t": {"json": {"name": "Ada"}}}
        assert [n["id"] for n in data["graph"]["nodes"]] == ["t", "s"]

    def test_outputs_are_node_outputs(self, built):
        built.test_step("t")

        assert isinstance(built.output_for("t"), NodeOutput)
