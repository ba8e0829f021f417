"""
Build Pipeline Module

Provides dependency-aware solution builds:
- Dependency graph from project references
- Deterministic build order with cycle detection
- Multi-pass execution with Debug -> Release fallback
- Critical-project short-circuit
"""

from slnbuild.pipeline.executor import (
    AttemptStatus,
    BuildExecutor,
    BuildResult,
    PassSummary,
    ProjectAttempt,
)
from slnbuild.pipeline.graph import DependencyGraph, GraphNode, build_graph
from slnbuild.pipeline.orchestrator import SolutionOrchestrator
from slnbuild.pipeline.sequencer import SequenceResult, sequence
from slnbuild.pipeline.tools import CommandCompiler, CommandGenerator, ToolResult

__all__ = [
    "AttemptStatus",
    "BuildExecutor",
    "BuildResult",
    "CommandCompiler",
    "CommandGenerator",
    "DependencyGraph",
    "GraphNode",
    "PassSummary",
    "ProjectAttempt",
    "SequenceResult",
    "SolutionOrchestrator",
    "ToolResult",
    "build_graph",
    "sequence",
]
