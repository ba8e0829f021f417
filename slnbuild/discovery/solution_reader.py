"""
Solution descriptor reader.

A solution lists its member projects one per line:

    Project("{F184B08F-...}") = "data", "data\\data.vbproj", "{0A1B...}"

Entries are returned in order of first appearance, which later stages use
as the default deterministic order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import List, Union

from slnbuild.errors import ParseError

logger = logging.getLogger(__name__)

PROJECT_ENTRY_RE = re.compile(
    r'^\s*Project\("\{?[^"]*\}?"\)\s*=\s*"(?P<name>[^"]+)"\s*,\s*"(?P<path>[^"]+)"'
)


@dataclass(frozen=True)
class SolutionEntry:
    """A project listed in a solution."""
    name: str
    path: Path


def _resolve_entry_path(solution_dir: Path, raw_path: str) -> Path:
    # Solutions are written on Windows; separators are backslashes.
    relative = Path(*PureWindowsPath(raw_path).parts)
    return solution_dir / relative


def read_solution(path: Union[str, Path]) -> List[SolutionEntry]:
    """
    List the projects of a solution whose descriptor file exists.

    Raises:
        ParseError: solution file missing or unreadable
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        raise ParseError(path, f"cannot read solution: {e}") from e

    entries: List[SolutionEntry] = []
    seen = set()

    for line in text.splitlines():
        match = PROJECT_ENTRY_RE.match(line)
        if not match:
            continue

        name = match.group("name")
        project_path = _resolve_entry_path(path.parent, match.group("path"))

        if not project_path.is_file():
            logger.debug(f"Skipping solution entry {name}: {project_path} not found")
            continue
        if name in seen:
            logger.debug(f"Skipping duplicate solution entry {name}")
            continue

        seen.add(name)
        entries.append(SolutionEntry(name=name, path=project_path))

    logger.info(f"Solution {path.name}: {len(entries)} projects")
    return entries
