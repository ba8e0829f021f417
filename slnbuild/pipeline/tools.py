"""
External tool wrappers: code generator and compiler.

Each invocation runs one process to completion before returning; the
generator in particular must never run twice at the same time on a host.
Output (stdout and stderr combined) is written to the log path supplied
by the caller.
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from slnbuild.config import BuildConfig, ToolSettings, Variant
from slnbuild.discovery import Project

logger = logging.getLogger(__name__)

# Return code recorded when the process could not be started or timed out
LAUNCH_FAILED = -1


@dataclass
class ToolResult:
    """Outcome of one generator or compiler invocation."""
    return_code: int
    log_path: Optional[Path] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.return_code == 0


class Compiler(Protocol):
    def compile(self, project: Project, variant: Variant, log_path: Path) -> ToolResult:
        ...


class Generator(Protocol):
    def generate(self, project: Project, variant: Variant, log_path: Path) -> ToolResult:
        ...


class _CommandTool:
    """Runs a templated command line for one project."""

    label = "tool"

    def __init__(self, config: BuildConfig, settings: ToolSettings):
        self.config = config
        self.settings = settings

    def _placeholders(self, project: Project, variant: Variant, log_path: Path) -> Dict[str, str]:
        return {
            "project_path": str(project.path),
            "project_dir": str(project.directory),
            "project_name": project.name,
            "variant": variant.value,
            "tool_bin": str(self.config.tool_bin_path),
            "config_dir": str(self.config.config_dir),
            "log_path": str(log_path),
        }

    def build_command(self, project: Project, variant: Variant, log_path: Path) -> List[str]:
        values = self._placeholders(project, variant, log_path)
        return [part.format(**values) for part in self.settings.command]

    def _template_failed(self, error: Exception, log_path: Path) -> ToolResult:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(f"cannot build {self.label} command: {error!r}\n")
        logger.warning(f"Bad {self.label} command template: {error!r}")
        return ToolResult(return_code=LAUNCH_FAILED, log_path=log_path)

    def _run(self, cmd: Sequence[str], log_path: Path, cwd: Path) -> ToolResult:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Command: {' '.join(cmd)}")

        if self.config.dry_run:
            logger.info(f"[DRY RUN] Would execute: {' '.join(cmd)}")
            log_path.write_text(f"[DRY RUN] {' '.join(cmd)}\n")
            return ToolResult(return_code=0, log_path=log_path)

        start = time.monotonic()
        with open(log_path, "w") as log:
            try:
                completed = subprocess.run(
                    list(cmd),
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    text=True,
                    timeout=self.settings.timeout,
                    cwd=str(cwd),
                )
                return_code = completed.returncode
            except subprocess.TimeoutExpired:
                log.write(f"\n{self.label} timed out after {self.settings.timeout} seconds\n")
                logger.warning(f"{self.label} timed out: {' '.join(cmd)}")
                return_code = LAUNCH_FAILED
            except OSError as e:
                log.write(f"\ncould not start {self.label}: {e}\n")
                logger.warning(f"Could not start {self.label}: {e}")
                return_code = LAUNCH_FAILED

        return ToolResult(
            return_code=return_code,
            log_path=log_path,
            duration_seconds=time.monotonic() - start,
        )


class CommandCompiler(_CommandTool):
    """Compiles a project descriptor with the configured compiler command."""

    label = "compiler"

    def __init__(self, config: BuildConfig):
        super().__init__(config, config.compiler)

    def compile(self, project: Project, variant: Variant, log_path: Path) -> ToolResult:
        try:
            cmd = self.build_command(project, variant, log_path)
        except (KeyError, IndexError, ValueError) as e:
            return self._template_failed(e, log_path)
        return self._run(cmd, log_path, cwd=project.directory)


class CommandGenerator(_CommandTool):
    """Regenerates a project's sources from its application descriptor."""

    label = "generator"

    def __init__(self, config: BuildConfig):
        super().__init__(config, config.generator)

    def _placeholders(self, project: Project, variant: Variant, log_path: Path) -> Dict[str, str]:
        values = super()._placeholders(project, variant, log_path)
        values["app_descriptor"] = self.config.generator.app_descriptor.format(**values)
        return values

    def generate(self, project: Project, variant: Variant, log_path: Path) -> ToolResult:
        try:
            cmd = self.build_command(project, variant, log_path)
        except (KeyError, IndexError, ValueError) as e:
            return self._template_failed(e, log_path)
        return self._run(cmd, log_path, cwd=project.directory)
