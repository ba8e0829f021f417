"""
Dependency graph of a solution.

Nodes are keyed by project name; edges mean "depends on". References to
identifiers outside the solution (prebuilt libraries) are dropped while
the graph is built, so every dependency name is also a node key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from slnbuild.discovery import Project, SolutionEntry, read_project
from slnbuild.errors import ParseError

logger = logging.getLogger(__name__)


class NodeStatus(Enum):
    """Build status of a graph node across the whole run."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class GraphNode:
    project: Project
    dependencies: Tuple[str, ...] = ()
    status: NodeStatus = NodeStatus.PENDING

    @property
    def name(self) -> str:
        return self.project.name


@dataclass
class DependencyGraph:
    """Node table plus adjacency. Structure is fixed after build_graph()."""
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    excluded: Dict[str, str] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.nodes

    def __getitem__(self, name: str) -> GraphNode:
        return self.nodes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def dependencies(self, name: str) -> Tuple[str, ...]:
        return self.nodes[name].dependencies

    def dependents(self, name: str) -> List[str]:
        """Names of the nodes that depend directly on `name`, sorted."""
        return sorted(n for n, node in self.nodes.items() if name in node.dependencies)

    def edges(self) -> Iterator[Tuple[str, str]]:
        """(dependent, dependency) pairs."""
        for name, node in self.nodes.items():
            for dep in node.dependencies:
                yield name, dep

    @classmethod
    def from_mapping(cls, adjacency: Mapping[str, Iterable[str]]) -> "DependencyGraph":
        """
        Build a graph from {name: [dependency names]}.

        Intended for tests and tooling; names that are not keys are dropped
        the same way unresolved references are.
        """
        graph = cls()
        for name in adjacency:
            project = Project(name=name, identifier=name, path=Path(f"{name}.proj"))
            graph.nodes[name] = GraphNode(project=project)
        for name, deps in adjacency.items():
            graph.nodes[name].dependencies = _unique(d for d in deps if d in graph.nodes)
        return graph


def _unique(names: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return tuple(seen)


def build_graph(
    entries: Iterable[SolutionEntry],
    reader: Callable[..., Project] = read_project,
) -> DependencyGraph:
    """
    Parse every solution entry and link the projects by identifier.

    Projects that fail to parse are logged and left out of the graph; they
    are listed in `DependencyGraph.excluded` with the reason.
    """
    graph = DependencyGraph()
    name_by_id: Dict[str, str] = {}

    # First pass: parse
    for entry in entries:
        try:
            project = reader(entry.path, name=entry.name)
        except ParseError as e:
            logger.warning(f"Excluding project {entry.name}: {e.reason} ({e.path})")
            graph.excluded[entry.name] = e.reason
            continue

        if project.identifier in name_by_id:
            logger.warning(
                f"Project {project.name} shares identifier {project.identifier} "
                f"with {name_by_id[project.identifier]}; keeping the first"
            )
        else:
            name_by_id[project.identifier] = project.name
        graph.nodes[project.name] = GraphNode(project=project)

    # Second pass: resolve identifiers to names
    for node in graph.nodes.values():
        resolved: List[str] = []
        for ref in node.project.references:
            dep_name: Optional[str] = name_by_id.get(ref.identifier)
            if dep_name is None:
                logger.debug(
                    f"{node.name}: reference {ref.name or ref.identifier} is external, ignored"
                )
                continue
            resolved.append(dep_name)
        node.dependencies = _unique(resolved)

    logger.info(
        f"Dependency graph: {len(graph)} projects, {sum(1 for _ in graph.edges())} edges"
        + (f", {len(graph.excluded)} excluded" if graph.excluded else "")
    )
    return graph
