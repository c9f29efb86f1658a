"""
Compute Flow - Main Entry Point

This module provides the command-line entry point for validating, planning
and running saved workspaces.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOAD_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="compute-flow",
        description="Validate, plan and run compute workflow graphs.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--settings", type=Path, default=None, help="Path to settings.json")

    sub = parser.add_subparsers(dest="command", required=True)

    validate_cmd = sub.add_parser("validate", help="Check a workspace for structural problems")
    validate_cmd.add_argument("file", type=Path)

    plan_cmd = sub.add_parser("plan", help="Print the execution order")
    plan_cmd.add_argument("file", type=Path)
    plan_cmd.add_argument("--target", default=None, help="Only plan this node and its inputs")

    run_cmd = sub.add_parser("run", help="Execute a workspace")
    run_cmd.add_argument("file", type=Path)
    run_cmd.add_argument("--target", default=None, help="Only run this node and its inputs")
    run_cmd.add_argument(
        "--output", type=Path, default=None,
        help="Save the workspace with results to this file",
    )
    return parser


def _cmd_validate(graph) -> int:
    from compute_flow.core.validation import validate

    result = validate(graph)
    for issue in result.errors:
        where = f" [{issue.node_id}]" if issue.node_id else ""
        print(f"{issue.code.value}{where}: {issue.message}")
    if result.valid:
        print(f"OK: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
        return EXIT_OK
    return EXIT_FAILED


def _cmd_plan(graph, target: str | None) -> int:
    from compute_flow.core.errors import StructuralError
    from compute_flow.core.execution import plan_execution

    try:
        plan = plan_execution(graph, target)
    except StructuralError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    for index, node_id in enumerate(plan, 1):
        node = graph.require_node(node_id)
        print(f"{index:3d}. {node.label} ({node.kind}) {node.id}")
    return EXIT_OK


async def _run_graph(graph, settings, target: str | None, output: Path | None) -> int:
    from compute_flow.core.errors import ComputeFlowError
    from compute_flow.core.execution import ExecutionStatus
    from compute_flow.core.session import GraphSession
    from compute_flow.core.workspace import save_workspace

    session = GraphSession(graph, settings)
    session.engine.set_progress_callback(
        lambda p: logging.getLogger("compute_flow").info(
            "[%d/%d] %s", p.nodes_completed, p.nodes_total, p.message
        )
    )
    try:
        try:
            handle = await session.run(target)
        except ComputeFlowError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILED
        job = await handle.wait()
    finally:
        await session.close()

    for node_id in job.plan:
        node = graph.get_node(node_id)
        if node is None:
            continue
        line = f"{node.status.value:10s} {node.label}"
        if node.error is not None:
            line += f": {node.error.message}"
        print(line)

    if output is not None:
        save_workspace(graph, output)
        print(f"Saved results to {output}")

    return EXIT_OK if job.status is ExecutionStatus.COMPLETED else EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Compute Flow.

    Returns:
        Exit code (0 for success, 1 for validation or execution failures,
        2 when the workspace cannot be loaded)
    """
    if sys.version_info < (3, 11):
        print("Error: Compute Flow requires Python 3.11 or later")
        return EXIT_FAILED

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from compute_flow.config import load_settings
    from compute_flow.core.errors import WorkspaceFormatError
    from compute_flow.core.workspace import load_workspace
    from compute_flow.nodes import register_all_nodes
    from compute_flow.providers import get_registry

    settings = load_settings(args.settings)
    register_all_nodes()
    get_registry().apply_configs(settings.providers)

    try:
        graph = load_workspace(args.file)
    except (OSError, WorkspaceFormatError) as e:
        print(f"Error: cannot load {args.file}: {e}", file=sys.stderr)
        return EXIT_LOAD_ERROR

    if args.command == "validate":
        return _cmd_validate(graph)
    if args.command == "plan":
        return _cmd_plan(graph, args.target)
    return asyncio.run(_run_graph(graph, settings, args.target, args.output))


if __name__ == "__main__":
    sys.exit(main())
