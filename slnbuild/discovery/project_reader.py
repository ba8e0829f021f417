"""
Project descriptor reader.

Parses one MSBuild-style project file into an immutable Project record:
identifier (ProjectGuid), output kind (OutputType) and the declared
ProjectReference entries. The file may or may not use the MSBuild XML
namespace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from defusedxml import DefusedXmlException
from defusedxml import ElementTree

from slnbuild.errors import ParseError

logger = logging.getLogger(__name__)


class OutputKind(Enum):
    """What a project produces. Display only; ordering ignores it."""
    LIBRARY = "Library"
    EXECUTABLE = "Executable"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ProjectReference:
    """A dependency entry as declared in the project file."""
    identifier: str
    name: str = ""
    path: str = ""


@dataclass(frozen=True)
class Project:
    """One parsed project descriptor."""
    name: str
    identifier: str
    path: Path
    output_kind: OutputKind = OutputKind.UNKNOWN
    references: Tuple[ProjectReference, ...] = ()

    @property
    def dependency_ids(self) -> Tuple[str, ...]:
        return tuple(ref.identifier for ref in self.references)

    @property
    def directory(self) -> Path:
        return self.path.parent


def normalize_identifier(value: Optional[str]) -> str:
    """Strip whitespace and enclosing braces: '{ABC-1}' -> 'ABC-1'."""
    if not value:
        return ""
    return value.strip().strip("{}").strip()


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _iter_named(root, name: str) -> Iterator:
    for element in root.iter():
        if _local_name(element.tag) == name:
            yield element


def _first_text(root, name: str) -> str:
    """Text of the first element called `name` with non-empty content."""
    for element in _iter_named(root, name):
        text = (element.text or "").strip()
        if text:
            return text
    return ""


def _child_text(element, name: str) -> str:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return ""


def _output_kind(value: str) -> OutputKind:
    if not value:
        return OutputKind.UNKNOWN
    if value == "Library":
        return OutputKind.LIBRARY
    return OutputKind.EXECUTABLE


def read_project(path: Union[str, Path], name: Optional[str] = None) -> Project:
    """
    Parse a project descriptor.

    Args:
        path: Project file path
        name: Project name as listed in the solution (defaults to file stem)

    Returns:
        Project record

    Raises:
        ParseError: file missing, not XML, or without a ProjectGuid
    """
    path = Path(path)
    if not path.is_file():
        raise ParseError(path, "project file not found")

    try:
        root = ElementTree.parse(str(path)).getroot()
    except ElementTree.ParseError as e:
        raise ParseError(path, f"malformed XML: {e}") from e
    except DefusedXmlException as e:
        raise ParseError(path, f"rejected XML: {e}") from e
    except OSError as e:
        raise ParseError(path, f"unreadable: {e}") from e

    identifier = normalize_identifier(_first_text(root, "ProjectGuid"))
    if not identifier:
        raise ParseError(path, "no ProjectGuid")

    references = []
    for element in _iter_named(root, "ProjectReference"):
        ref_id = normalize_identifier(_child_text(element, "Project"))
        if not ref_id:
            logger.debug(f"{path.name}: reference without identifier ignored ({element.get('Include')})")
            continue
        references.append(ProjectReference(
            identifier=ref_id,
            name=_child_text(element, "Name"),
            path=element.get("Include", ""),
        ))

    return Project(
        name=name or path.stem,
        identifier=identifier,
        path=path,
        output_kind=_output_kind(_first_text(root, "OutputType")),
        references=tuple(references),
    )
