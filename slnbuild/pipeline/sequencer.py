"""
Topological sequencing of a dependency graph.

Depth-first, post-order: a project is emitted after everything it depends
on. Top-level nodes are visited in sorted name order so the same graph
always yields the same build order.

Cycles do not stop the sort. When the walk reaches a node that is still
on the current path, the path slice from that node to the current one is
recorded as a cycle and the edge is not followed. The resulting order is
best-effort along cycle edges; the executor makes up for it with a second
pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

from slnbuild.pipeline.graph import DependencyGraph

logger = logging.getLogger(__name__)

CycleRecord = Tuple[str, ...]


class VisitState(Enum):
    UNVISITED = 0
    VISITING = 1
    VISITED = 2


@dataclass
class SequenceResult:
    """Build order plus the cycles found while computing it."""
    order: List[str] = field(default_factory=list)
    cycles: List[CycleRecord] = field(default_factory=list)

    @property
    def has_circular_dependencies(self) -> bool:
        return bool(self.cycles)


def sequence(graph: DependencyGraph) -> SequenceResult:
    """Compute the build order of `graph`."""
    result = SequenceResult()
    state: Dict[str, VisitState] = {name: VisitState.UNVISITED for name in graph}

    for root in sorted(graph):
        if state[root] is not VisitState.UNVISITED:
            continue

        # Each frame is (node, index of the next dependency to look at).
        # `path` mirrors the frames and is what cycle slices are cut from.
        state[root] = VisitState.VISITING
        stack: List[Tuple[str, int]] = [(root, 0)]
        path: List[str] = [root]

        while stack:
            name, index = stack[-1]
            deps = graph.dependencies(name)

            if index >= len(deps):
                stack.pop()
                path.pop()
                state[name] = VisitState.VISITED
                result.order.append(name)
                continue

            stack[-1] = (name, index + 1)
            dep = deps[index]
            dep_state = state[dep]

            if dep_state is VisitState.UNVISITED:
                state[dep] = VisitState.VISITING
                stack.append((dep, 0))
                path.append(dep)
            elif dep_state is VisitState.VISITING:
                cycle = tuple(path[path.index(dep):])
                result.cycles.append(cycle)
                logger.info(f"Circular dependency: {' -> '.join(cycle + (dep,))}")

    if result.cycles:
        logger.info(
            f"{len(result.cycles)} circular dependency chain(s) found; "
            "build order is best-effort"
        )
    logger.debug(f"Build order: {', '.join(result.order)}")
    return result
