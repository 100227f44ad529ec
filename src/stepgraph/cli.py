"""
CLI tool for workflow graphs.

Provides terminal access to:
- Step labels
- Auto-layout
- Structural and config validation
- Single-step test runs
"""

import sys
import json
import argparse
from pathlib import Path
from typing import Any

from stepgraph.dry_run import DryRunExecutor
from stepgraph.graph import (
    Graph,
    compute_step_labels,
    parse_graph,
    structural_problems,
    validate_node_config,
)
from stepgraph.layout import LayoutOptions, layout
from stepgraph.observability import setup_logging


def load_graph(path: str) -> Graph:
    """Load a graph JSON file; accepts a bare graph or {"graph": {...}}."""
    data = json.loads(Path(path).read_text())
    if isinstance(data, dict) and "graph" in data:
        data = data["graph"]
    return parse_graph(data)


def print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def cmd_labels(args: argparse.Namespace) -> int:
    """Print the step label of every node."""
    graph = load_graph(args.graph)
    print_json(compute_step_labels(graph))
    return 0


def cmd_layout(args: argparse.Namespace) -> int:
    """Lay out the graph and print it with new positions."""
    graph = load_graph(args.graph)
    options = LayoutOptions.from_settings()
    if args.rankdir:
        options = LayoutOptions(
            rankdir=args.rankdir,
            nodesep=options.nodesep,
            ranksep=options.ranksep,
            node_width=options.node_width,
            node_height=options.node_height,
        )
    result = layout(graph, options)

    if args.positions_only:
        print_json({n.id: {"x": n.position.x, "y": n.position.y} for n in result.nodes})
    else:
        print_json(result.to_dict())
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Report structural problems and per-node config issues."""
    graph = load_graph(args.graph)
    problems = structural_problems(graph)
    config_issues = {
        node.id: [{"field": i.field, "message": i.message} for i in validate_node_config(node)]
        for node in graph.nodes
    }
    config_issues = {k: v for k, v in config_issues.items() if v}

    print_json({
        "wellFormed": not problems,
        "problems": problems,
        "configIssues": config_issues,
    })
    if problems:
        return 1
    if args.strict and config_issues:
        return 1
    return 0


def cmd_test_step(args: argparse.Namespace) -> int:
    """Test one node (running its untested ancestors first)."""
    setup_logging()
    graph = load_graph(args.graph)
    if graph.get_node(args.node) is None:
        print(f"Error: Unknown node: {args.node}")
        return 1

    result = DryRunExecutor().test_step(graph, args.node, {})
    print_json(result.to_dict())
    return 0 if result.is_success else 1


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="stepgraph - workflow graph tools",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # labels command
    labels_parser = subparsers.add_parser('labels', help='Print step labels')
    labels_parser.add_argument('graph', help='Path to graph JSON')

    # layout command
    layout_parser = subparsers.add_parser('layout', help='Auto-layout a graph')
    layout_parser.add_argument('graph', help='Path to graph JSON')
    layout_parser.add_argument('--rankdir', choices=['LR', 'TB'], help='Rank direction')
    layout_parser.add_argument('--positions-only', action='store_true', help='Print only node positions')

    # validate command
    validate_parser = subparsers.add_parser('validate', help='Validate graph structure and node configs')
    validate_parser.add_argument('graph', help='Path to graph JSON')
    validate_parser.add_argument('--strict', action='store_true', help='Fail on config issues too')

    # test-step command
    test_parser = subparsers.add_parser('test-step', help='Dry-run one node')
    test_parser.add_argument('graph', help='Path to graph JSON')
    test_parser.add_argument('node', help='Node id to test')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == 'labels':
            return cmd_labels(args)
        elif args.command == 'layout':
            return cmd_layout(args)
        elif args.command == 'validate':
            return cmd_validate(args)
        elif args.command == 'test-step':
            return cmd_test_step(args)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
