"""Pytest configuration and fixtures."""
import os

import pytest

from builders import edge, node

# Set test environment variables
os.environ["STEPGRAPH_ENV"] = "test"
os.environ["STEPGRAPH_LOG_LEVEL"] = "DEBUG"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop the cached settings so env changes in a test take effect."""
    from stepgraph.config import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def linear_graph():
    """trigger -> http -> set."""
    from stepgraph.graph import parse_graph

    return parse_graph({
        "nodes": [
            node("A", "manual_trigger"),
            node("B", "http_request"),
            node("C", "set_transform"),
        ],
        "edges": [edge("A", "B"), edge("B", "C")],
    })


@pytest.fixture
def branch_graph():
    """trigger -> if -> (true) yes / (false) no -> merge."""
    from stepgraph.graph import parse_graph

    return parse_graph({
        "nodes": [
            node("trigger", "manual_trigger"),
            node("if", "if_condition"),
            node("yes"),
            node("no"),
            node("merge", "merge"),
        ],
        "edges": [
            edge("trigger", "if"),
            edge("if", "yes", "true"),
            edge("if", "no", "false"),
            edge("yes", "merge", targetHandle="branchA"),
            edge("no", "merge", targetHandle="branchB"),
        ],
    })


@pytest.fixture
def loop_graph():
    """trigger -> loop -> (loopComplete) done / (loopBody) body1 -> body2."""
    from stepgraph.graph import parse_graph

    return parse_graph({
        "nodes": [
            node("trigger", "manual_trigger"),
            node("loop", "loop"),
            node("body1"),
            node("body2"),
            node("done"),
        ],
        "edges": [
            edge("trigger", "loop"),
            edge("loop", "body1", "loopBody"),
            edge("body1", "body2"),
            edge("loop", "done", "loopComplete"),
        ],
    })
