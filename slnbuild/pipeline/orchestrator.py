#!/usr/bin/env python3
"""
Solution Build Orchestrator

Dependency-aware build of a multi-project solution with:
- Project discovery from the solution and project descriptors
- Deterministic build order (topological sort)
- Tolerance for circular project references (second pass)
- Debug -> Release fallback for projects that only fail in Debug
- Critical-project short-circuit
- JSON build report for CI

Usage:
    # Build the configured solution
    python -m slnbuild.pipeline.orchestrator

    # Build a specific solution in Release
    python -m slnbuild.pipeline.orchestrator app/app.sln --variant Release

    # Show the build order and exit
    python -m slnbuild.pipeline.orchestrator app/app.sln --list-projects

    # Dry run (show what would run)
    python -m slnbuild.pipeline.orchestrator --dry-run

Only one build may run per host at a time: the generator is a
single-instance tool. Callers running several pipelines on one machine
must serialize whole runs themselves.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from slnbuild.config import CONFIG_PATH, BuildConfig, load_config
from slnbuild.discovery import OutputKind, SolutionEntry, read_solution
from slnbuild.errors import ParseError, SlnBuildError
from slnbuild.pipeline.executor import BuildExecutor, BuildResult
from slnbuild.pipeline.graph import DependencyGraph, build_graph
from slnbuild.pipeline.sequencer import SequenceResult, sequence
from slnbuild.pipeline.tools import CommandCompiler, CommandGenerator, Compiler, Generator

logger = logging.getLogger(__name__)


class SolutionOrchestrator:
    """
    Orchestrates the build of one solution.

    Features:
    - Discovery: solution entries -> project metadata -> dependency graph
    - Planning: build order and cycle detection
    - Execution: sequential compile with retry and fallback policies
    """

    def __init__(
        self,
        config: BuildConfig,
        compiler: Optional[Compiler] = None,
        generator: Optional[Generator] = None,
    ):
        self.config = config
        self.compiler = compiler or CommandCompiler(config)
        self.generator = generator or CommandGenerator(config)

    def discover(self) -> Tuple[List[SolutionEntry], DependencyGraph]:
        """
        Read the solution and build its dependency graph.

        Raises:
            ParseError: solution missing or unreadable
        """
        if self.config.solution_path is None:
            raise ParseError("<none>", "no solution configured")

        entries = read_solution(self.config.solution_path)
        graph = build_graph(entries)
        return entries, graph

    def plan(self) -> Tuple[DependencyGraph, SequenceResult]:
        """Discover the solution and compute its build order."""
        _, graph = self.discover()
        return graph, sequence(graph)

    def run(self) -> BuildResult:
        """
        Run the build.

        Returns:
            BuildResult with detailed results; a solution that cannot be
            read yields a failed result rather than an exception
        """
        build_id = f"build_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        result = BuildResult(
            build_id=build_id,
            started_at=datetime.now().isoformat(),
            variant=self.config.variant.value,
        )

        logger.info(f"Starting build: {build_id} ({self.config.solution_path})")

        try:
            graph, plan = self.plan()
        except ParseError as e:
            logger.error(f"Cannot read solution: {e}")
            result.status = "failed"
            result.errors.append(str(e))
            result.finalize()
            return result

        result.excluded_projects = dict(graph.excluded)

        executor = BuildExecutor(self.config, self.compiler, self.generator)
        executor.run(graph, plan, result)
        result.finalize()

        summary = (
            f"Build {build_id} completed: {result.status} "
            f"({len(result.build_order) - len(result.failed_projects) - len(result.not_attempted)} built, "
            f"{len(result.failed_projects)} failed, {len(result.passes)} pass(es))"
        )
        if result.succeeded:
            logger.info(summary)
        else:
            logger.error(summary)

        return result


def write_report(result: BuildResult, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(result.to_json())
    logger.info(f"Report written to {path}")


def print_build_order(config: BuildConfig, graph: DependencyGraph, plan: SequenceResult) -> None:
    print("\nBuild Order:")
    print("=" * 60)

    for position, name in enumerate(plan.order, start=1):
        node = graph[name]
        kind = "Library" if node.project.output_kind is OutputKind.LIBRARY else "Executable"
        critical = " [CRITICAL]" if config.is_critical(name) else ""
        deps = ", ".join(node.dependencies) if node.dependencies else "none"
        print(f"  {position:3d}. {name} ({kind}){critical}")
        print(f"       Depends on: {deps}")
        required_by = graph.dependents(name)
        if required_by:
            print(f"       Required by: {', '.join(required_by)}")

    if plan.cycles:
        print("\nCircular dependencies (built in two passes):")
        for cycle in plan.cycles:
            print(f"  - {' -> '.join(cycle + (cycle[0],))}")

    if graph.excluded:
        print("\nExcluded (unreadable) projects:")
        for name, reason in graph.excluded.items():
            print(f"  - {name}: {reason}")


def print_summary(result: BuildResult) -> None:
    print("\n" + "=" * 60)
    print("BUILD SUMMARY")
    print("=" * 60)
    print(f"Build ID: {result.build_id}")
    print(f"Status: {result.status.upper()}")
    print(f"Variant: {result.variant}")
    print(f"Duration: {result.duration_seconds:.2f}s")

    for summary in result.passes:
        print(f"\nPass {summary.pass_number}:")
        print(f"  Succeeded: {len(summary.succeeded)}")
        print(f"  Failed: {len(summary.failed)}")
        print(f"  Skipped: {len(summary.skipped)}")
        if summary.aborted:
            print(f"  Aborted, not attempted: {', '.join(summary.not_attempted) or 'none'}")

    if result.release_fallbacks:
        print(f"\nBuilt in Release after Debug failure: {', '.join(result.release_fallbacks)}")

    if result.failed_projects:
        print("\nFailed projects:")
        for name, logs in result.failed_logs.items():
            print(f"  - {name}: {', '.join(logs)}")

    if result.errors:
        print("\nErrors:")
        for error in result.errors:
            print(f"  - {error}")

    print("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Solution Build Orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "solution",
        nargs="?",
        type=Path,
        help="Solution file (default: from config or SLNBUILD_SOLUTION)"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help=f"Config file path (default: {CONFIG_PATH})"
    )

    parser.add_argument(
        "--variant",
        type=str,
        help="Build variant: Debug or Release"
    )

    parser.add_argument(
        "--tool-bin",
        type=Path,
        help="Directory holding the generator and compiler"
    )

    parser.add_argument(
        "--config-dir",
        type=Path,
        help="Tool configuration directory"
    )

    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directory for per-project build logs"
    )

    parser.add_argument(
        "--critical",
        type=str,
        help="Comma-separated critical project names"
    )

    parser.add_argument(
        "--no-stop-on-error",
        action="store_true",
        help="Keep building after a project fails"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would run without executing"
    )

    parser.add_argument(
        "--list-projects",
        action="store_true",
        help="Print the build order and exit"
    )

    parser.add_argument(
        "--report-file",
        type=Path,
        help="Write a JSON build report to this path"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    overrides = {
        "solution_path": args.solution,
        "variant": args.variant,
        "tool_bin_path": args.tool_bin,
        "config_dir": args.config_dir,
        "log_dir": args.log_dir,
        "critical_projects": args.critical.split(",") if args.critical else None,
        "stop_on_error": False if args.no_stop_on_error else None,
        "dry_run": True if args.dry_run else None,
    }

    try:
        config = load_config(args.config, overrides)
    except SlnBuildError as e:
        logger.error(str(e))
        return 1

    orchestrator = SolutionOrchestrator(config)

    if args.list_projects:
        try:
            graph, plan = orchestrator.plan()
        except ParseError as e:
            logger.error(f"Cannot read solution: {e}")
            return 1
        print_build_order(config, graph, plan)
        return 0

    issues = config.validate()
    if issues:
        for issue in issues:
            logger.error(issue)
        return 1

    result = orchestrator.run()

    if args.report_file:
        write_report(result, args.report_file)

    print_summary(result)

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
