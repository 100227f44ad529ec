"""Tests for CLI commands."""
import json
from argparse import Namespace
from unittest.mock import patch

import pytest

from builders import edge, node
from stepgraph.cli import cmd_labels, cmd_validate, main


@pytest.fixture
def graph_file(tmp_path):
    """trigger -> http, saved as JSON."""
    path = tmp_path / "graph.json"
    path.write_text(json.dumps({
        "nodes": [
            node("t", "manual_trigger", config={"sampleData": '{"ok": true}'}),
            node("h", "http_request"),
        ],
        "edges": [edge("t", "h")],
    }))
    return path


class TestCmdLabels:
    def test_prints_labels(self, graph_file, capsys):
        result = cmd_labels(Namespace(graph=str(graph_file)))

        assert result == 0
        assert json.loads(capsys.readouterr().out) == {"t": "1", "h": "2"}

    def test_accepts_wrapped_graph(self, tmp_path, capsys):
        path = tmp_path / "wf.json"
        path.write_text(json.dumps({"graph": {"nodes": [node("t", "manual_trigger")]}}))

        assert main(["labels", str(path)]) == 0
        assert json.loads(capsys.readouterr().out) == {"t": "1"}


class TestCmdLayout:
    def test_positions_only(self, graph_file, capsys):
        result = main(["layout", str(graph_file), "--positions-only"])

        positions = json.loads(capsys.readouterr().out)
        assert result == 0
        assert positions["t"]["x"] < positions["h"]["x"]

    def test_top_to_bottom(self, graph_file, capsys):
        main(["layout", str(graph_file), "--rankdir", "TB", "--positions-only"])

        positions = json.loads(capsys.readouterr().out)
        assert positions["t"]["y"] < positions["h"]["y"]

    def test_full_graph(self, graph_file, capsys):
        main(["layout", str(graph_file)])

        data = json.loads(capsys.readouterr().out)
        assert [n["id"] for n in data["nodes"]] == ["t", "h"]


class TestCmdValidate:
    """Test cmd_validate function."""

    def test_config_issues_reported(self, graph_file, capsys):
        result = cmd_validate(Namespace(graph=str(graph_file), strict=False))

        report = json.loads(capsys.readouterr().out)
        assert result == 0
        assert report["wellFormed"] is True
        assert report["configIssues"] == {"h": [{"field": "url", "message": "URL is required"}]}

    def test_strict_fails_on_config_issues(self, graph_file):
        assert cmd_validate(Namespace(graph=str(graph_file), strict=True)) == 1

    def test_structural_problems_fail(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({
            "nodes": [node("t", "manual_trigger")],
            "edges": [edge("t", "ghost")],
        }))

        result = main(["validate", str(path)])

        report = json.loads(capsys.readouterr().out)
        assert result == 1
        assert report["wellFormed"] is False
        assert report["problems"]


class TestCmdTestStep:
    """Test the test-step command."""

    @patch("stepgraph.cli.setup_logging")
    def test_runs_trigger(self, mock_logging, graph_file, capsys):
        result = main(["test-step", str(graph_file), "t"])

        data = json.loads(capsys.readouterr().out)
        assert result == 0
        assert data["output"] == {"json": {"ok": True}}
        assert data["statuses"] == {"t": "tested"}

    @patch("stepgraph.cli.setup_logging")
    def test_failing_step_exits_nonzero(self, mock_logging, graph_file, capsys):
        result = main(["test-step", str(graph_file), "h"])

        data = json.loads(capsys.readouterr().out)
        assert result == 1
        assert data["error"]["nodeId"] == "h"
        assert data["statuses"]["h"] == "error"

    @patch("stepgraph.cli.setup_logging")
    def test_unknown_node(self, mock_logging, graph_file, capsys):
        result = main(["test-step", str(graph_file), "ghost"])

        assert result == 1
        assert "Unknown node: ghost" in capsys.readouterr().out


class TestMain:
    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_missing_file(self, tmp_path, capsys):
        result = main(["labels", str(tmp_path / "missing.json")])

        assert result == 1
        assert capsys.readouterr().out.startswith("Error:")

    def test_invalid_graph(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"nodes": [{"id": "x", "type": "not_a_type"}]}))

        assert main(["labels", str(path)]) == 1
        assert "Error:" in capsys.readouterr().out
