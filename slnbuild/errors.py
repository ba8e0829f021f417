"""
Error taxonomy for the solution build orchestrator.

Only conditions that stop a caller from proceeding are exceptions.
Unresolved project references and dependency cycles are ordinary data:
dropped references are logged by the graph builder and cycles are
reported as CycleRecord tuples by the sequencer.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union


class SlnBuildError(Exception):
    """Base class for all orchestrator errors."""


class ConfigError(SlnBuildError):
    """Invalid build configuration value."""


class ParseError(SlnBuildError):
    """A project or solution descriptor could not be read or understood."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class BuildFailure(SlnBuildError):
    """One or more projects never built successfully."""

    def __init__(self, failed_projects: List[str], message: Optional[str] = None):
        self.failed_projects = list(failed_projects)
        super().__init__(message or f"Build failed: {', '.join(self.failed_projects)}")


class CriticalFailure(BuildFailure):
    """A critical project failed and the run was aborted."""

    def __init__(self, project: str, failed_projects: Optional[List[str]] = None):
        self.project = project
        super().__init__(
            failed_projects or [project],
            f"Critical project '{project}' failed; build aborted",
        )
