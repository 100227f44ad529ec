"""Tests for the graph mutator."""
import pytest

from builders import edge, graph, node
from stepgraph.graph import (
    EdgeKind,
    Graph,
    GraphMutationError,
    InsertAnchor,
    NodeStatus,
    NodeType,
    delete_node,
    insert_branch_node,
    insert_node,
    is_well_formed,
    new_node,
)
from stepgraph.graph.mutator import edge_id


def connections(g):
    """Edges without ids, for comparisons that ignore renaming."""
    return {
        (e.source, e.handle, e.target, e.target_handle, e.kind, e.label)
        for e in g.edges
    }


class TestInsertNode:
    """Test insert_node."""

    def test_first_node_on_empty_graph(self):
        g = insert_node(Graph(), new_node("manual_trigger", "t"))

        assert g.node_ids == ["t"]
        assert g.edges == ()

    def test_source_required_on_non_empty_graph(self, linear_graph):
        with pytest.raises(GraphMutationError):
            insert_node(linear_graph, new_node("code", "x"))

    def test_append_on_free_output(self, linear_graph):
        g = insert_node(linear_graph, new_node("code", "D"), InsertAnchor("C"))

        assert ("C", "main", "D", None, EdgeKind.PLAIN, None) in connections(g)
        assert len(g.edges) == 3
        assert is_well_formed(g)

    def test_split_edge(self):
        """Inserting X into A->B leaves exactly A->X and X->B."""
        g = graph([node("A", "manual_trigger"), node("B")], [edge("A", "B")])

        result = insert_node(g, new_node("code", "X"), InsertAnchor("A", target_id="B"))

        assert {(e.source, e.target) for e in result.edges} == {("A", "X"), ("X", "B")}
        assert is_well_formed(result)

    def test_input_graph_unchanged(self, linear_graph):
        before = linear_graph.to_dict()

        insert_node(linear_graph, new_node("code", "X"), InsertAnchor("A", target_id="B"))

        assert linear_graph.to_dict() == before

    def test_split_keeps_branch_tag_on_source_side(self, branch_graph):
        """The if -> X edge keeps the true handle; X -> yes is a plain edge."""
        result = insert_node(branch_graph, new_node("code", "X"), InsertAnchor("if", "true", "yes"))

        assert ("if", "true", "X", None, EdgeKind.PLAIN, None) in connections(result)
        assert ("X", "main", "yes", None, EdgeKind.PLAIN, None) in connections(result)
        assert is_well_formed(result)

    def test_split_keeps_target_handle_on_target_side(self, branch_graph):
        result = insert_node(branch_graph, new_node("code", "X"), InsertAnchor("yes", target_id="merge"))

        assert ("X", "main", "merge", "branchA", EdgeKind.PLAIN, None) in connections(result)

    def test_append_on_if_handle_sets_kind_and_label(self):
        g = graph([node("if", "if_condition")])

        result = insert_node(g, new_node("code", "X"), InsertAnchor("if", "false"))

        (e,) = result.edges
        assert e.source_handle == "false"
        assert e.kind == EdgeKind.BRANCH
        assert e.label == "False"

    def test_loop_splitting_edge_continues_via_loop_complete(self, linear_graph):
        result = insert_node(linear_graph, new_node("loop", "L"), InsertAnchor("A", target_id="B"))

        (out,) = result.outgoing_edges("L")
        assert out.target == "B"
        assert out.source_handle == "loopComplete"
        assert out.kind == EdgeKind.LOOP
        assert is_well_formed(result)

    def test_if_cannot_split_an_edge(self, linear_graph):
        with pytest.raises(GraphMutationError, match="insert_branch_node"):
            insert_node(linear_graph, new_node("if_condition", "I"), InsertAnchor("A", target_id="B"))

    def test_duplicate_id(self, linear_graph):
        with pytest.raises(GraphMutationError, match="already exists"):
            insert_node(linear_graph, new_node("code", "B"), InsertAnchor("C"))

    def test_occupied_output(self, linear_graph):
        with pytest.raises(GraphMutationError, match="already connected"):
            insert_node(linear_graph, new_node("code", "X"), InsertAnchor("A"))

    def test_unknown_source(self, linear_graph):
        with pytest.raises(GraphMutationError, match="unknown source"):
            insert_node(linear_graph, new_node("code", "X"), InsertAnchor("nope"))

    def test_handle_not_offered(self, linear_graph):
        with pytest.raises(GraphMutationError, match="has no 'true' output"):
            insert_node(linear_graph, new_node("code", "X"), InsertAnchor("C", "true"))

    def test_missing_edge_to_split(self, linear_graph):
        with pytest.raises(GraphMutationError, match="to insert into"):
            insert_node(linear_graph, new_node("code", "X"), InsertAnchor("A", target_id="C"))


class TestInsertBranchNode:
    """Test insert_branch_node scaffolding."""

    def test_with_target_adds_four_edges(self, linear_graph):
        result = insert_branch_node(linear_graph, new_node("if_condition", "I"), InsertAnchor("A", target_id="B"))

        new_edges = [e for e in result.edges if e not in linear_graph.edges]
        merges = [n for n in result.nodes if n.type == NodeType.MERGE]
        out_of_if = result.outgoing_edges("I")

        assert len(new_edges) == 4
        assert len(merges) == 1
        assert sorted(e.handle for e in out_of_if) == ["false", "true"]
        assert {(e.source, e.target) for e in new_edges} == {
            ("A", "I"), ("I", "I-merge"), ("I-merge", "B"),
        }
        assert not any(e.source == "A" and e.target == "B" for e in result.edges)
        assert is_well_formed(result)

    def test_without_target_adds_three_edges(self, linear_graph):
        result = insert_branch_node(linear_graph, new_node("if_condition", "I"), InsertAnchor("C"))

        new_edges = [e for e in result.edges if e not in linear_graph.edges]

        assert len(new_edges) == 3
        assert result.outgoing_edges("I-merge") == []

    def test_merge_inputs_and_defaults(self, linear_graph):
        result = insert_branch_node(linear_graph, new_node("if_condition", "I"), InsertAnchor("C"))

        merge = result.get_node("I-merge")
        handles = {e.handle: e.target_handle for e in result.outgoing_edges("I")}

        assert merge.status == NodeStatus.CONFIGURED
        assert merge.config.strategy == "append"
        assert handles == {"true": "branchA", "false": "branchB"}
        assert all(e.kind == EdgeKind.BRANCH for e in result.outgoing_edges("I"))

    def test_on_empty_graph(self):
        result = insert_branch_node(Graph(), new_node("if_condition", "I"))

        assert result.node_ids == ["I", "I-merge"]
        assert len(result.edges) == 2

    def test_merge_id_collision(self):
        g = graph([node("t", "manual_trigger"), node("I-merge")])

        result = insert_branch_node(g, new_node("if_condition", "I"), InsertAnchor("t"))

        assert "I-merge-2" in result.node_ids

    def test_requires_if_condition(self, linear_graph):
        with pytest.raises(GraphMutationError):
            insert_branch_node(linear_graph, new_node("code", "X"), InsertAnchor("C"))


class TestDeleteNode:
    """Test delete_node bridging."""

    def test_insert_then_delete_restores_edges(self, linear_graph, branch_graph):
        for g, anchor in (
            (linear_graph, InsertAnchor("A", target_id="B")),
            (branch_graph, InsertAnchor("if", "false", "no")),
            (branch_graph, InsertAnchor("no", target_id="merge")),
        ):
            inserted = insert_node(g, new_node("code", "X"), anchor)

            restored = delete_node(inserted, "X")

            assert connections(restored) == connections(g)
            assert restored.node_ids == g.node_ids

    def test_one_in_one_out_preserves_handle_kind_label(self):
        g = graph(
            [node("if", "if_condition"), node("a"), node("b")],
            [
                edge("if", "a", "true", kind="branch", label="True"),
                edge("a", "b"),
            ],
        )

        result = delete_node(g, "a")

        (bridge,) = result.edges
        assert (bridge.source, bridge.target) == ("if", "b")
        assert bridge.source_handle == "true"
        assert bridge.kind == EdgeKind.BRANCH
        assert bridge.label == "True"

    def test_bridge_keeps_outgoing_target_handle(self, branch_graph):
        result = delete_node(branch_graph, "yes")

        assert ("if", "true", "merge", "branchA", EdgeKind.PLAIN, None) in connections(result)

    def test_terminal_node_drops_edges(self, linear_graph):
        result = delete_node(linear_graph, "C")

        assert {(e.source, e.target) for e in result.edges} == {("A", "B")}

    def test_k_by_j_bridges(self, branch_graph):
        g = insert_node(branch_graph, new_node("code", "end"), InsertAnchor("merge"))

        result = delete_node(g, "merge")

        assert {(e.source, e.target) for e in result.edges if e.target == "end"} == {
            ("yes", "end"), ("no", "end"),
        }

    def test_unknown_node(self, linear_graph):
        with pytest.raises(GraphMutationError):
            delete_node(linear_graph, "ghost")


class TestEdgeIds:
    def test_deterministic(self):
        assert edge_id("a", "main", "b") == "e-a-main-b"

    def test_collision_suffix(self):
        assert edge_id("a", "main", "b", {"e-a-main-b", "e-a-main-b-2"}) == "e-a-main-b-3"
