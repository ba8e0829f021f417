"""
Project Discovery Module

Reads solution and project descriptors:
- Solution entries (name + project file path)
- Project metadata (identifier, output kind, references)
"""

from slnbuild.discovery.project_reader import (
    OutputKind,
    Project,
    ProjectReference,
    normalize_identifier,
    read_project,
)
from slnbuild.discovery.solution_reader import (
    SolutionEntry,
    read_solution,
)

__all__ = [
    "OutputKind",
    "Project",
    "ProjectReference",
    "SolutionEntry",
    "normalize_identifier",
    "read_project",
    "read_solution",
]
