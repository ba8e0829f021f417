"""
Build Executor

Walks a computed build order and compiles each project:
- One pass for cycle-free graphs, two passes when cycles were found
- Projects that succeeded in an earlier pass are skipped
- Debug builds that fail on their last chance are retried in Release
  after regenerating the project
- A failure on a critical project aborts the pass (and the run)
- Optional stop-on-first-error for cycle-free runs

Everything runs sequentially: one external process at a time.
"""

from __future__ import annotations

import json
import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from slnbuild.config import BuildConfig, Variant
from slnbuild.discovery import Project
from slnbuild.errors import BuildFailure, CriticalFailure
from slnbuild.pipeline.graph import DependencyGraph, NodeStatus
from slnbuild.pipeline.sequencer import SequenceResult
from slnbuild.pipeline.tools import Compiler, Generator, ToolResult

logger = logging.getLogger(__name__)

MAX_PASSES = 2


class AttemptStatus(Enum):
    """Outcome of one project in one pass."""
    SUCCEEDED = "succeeded"
    FAILED_RETRYING = "failed_retrying"
    FAILED_FINAL = "failed_final"
    SKIPPED = "skipped"


@dataclass
class ProjectAttempt:
    project: str
    pass_number: int
    status: AttemptStatus
    return_code: int = 0
    log_path: Optional[Path] = None
    debug_log_path: Optional[Path] = None
    release_fallback: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "return_code": self.return_code,
            "log": str(self.log_path) if self.log_path else None,
            "debug_log": str(self.debug_log_path) if self.debug_log_path else None,
            "release_fallback": self.release_fallback,
            "duration": round(self.duration_seconds, 3),
        }


@dataclass
class PassSummary:
    """What happened in one sweep over the build order."""
    pass_number: int
    attempts: Dict[str, ProjectAttempt] = field(default_factory=dict)
    not_attempted: List[str] = field(default_factory=list)
    aborted: bool = False
    critical_failure: Optional[str] = None

    def _with_status(self, *statuses: AttemptStatus) -> List[str]:
        return [name for name, a in self.attempts.items() if a.status in statuses]

    @property
    def succeeded(self) -> List[str]:
        return self._with_status(AttemptStatus.SUCCEEDED)

    @property
    def failed(self) -> List[str]:
        return self._with_status(AttemptStatus.FAILED_RETRYING, AttemptStatus.FAILED_FINAL)

    @property
    def skipped(self) -> List[str]:
        return self._with_status(AttemptStatus.SKIPPED)

    @property
    def clean(self) -> bool:
        return not self.failed and not self.aborted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass": self.pass_number,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "failed_projects": self.failed,
            "not_attempted": self.not_attempted,
            "aborted": self.aborted,
            "critical_failure": self.critical_failure,
            "projects": {name: a.to_dict() for name, a in self.attempts.items()},
        }


@dataclass
class BuildResult:
    """Result of a full solution build."""
    build_id: str
    started_at: str
    completed_at: Optional[str] = None
    duration_seconds: float = 0.0
    status: str = "pending"
    variant: str = Variant.DEBUG.value

    build_order: List[str] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)
    max_passes: int = 1
    passes: List[PassSummary] = field(default_factory=list)

    failed_projects: List[str] = field(default_factory=list)
    not_attempted: List[str] = field(default_factory=list)
    release_fallbacks: List[str] = field(default_factory=list)
    critical_failure: Optional[str] = None
    excluded_projects: Dict[str, str] = field(default_factory=dict)

    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def failed_logs(self) -> Dict[str, List[str]]:
        """Logs of every failed project: the last log, then any preserved Debug log."""
        logs: Dict[str, List[str]] = {}
        for summary in self.passes:
            for name, attempt in summary.attempts.items():
                if name not in self.failed_projects:
                    continue
                paths = [p for p in (attempt.log_path, attempt.debug_log_path) if p]
                if paths:
                    logs[name] = [str(p) for p in paths]
        return logs

    def finalize(self) -> None:
        """Finalize the result with completion time."""
        self.completed_at = datetime.now().isoformat()
        started = datetime.fromisoformat(self.started_at)
        completed = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (completed - started).total_seconds()

    def raise_for_status(self) -> None:
        """Raise CriticalFailure / BuildFailure if the build did not succeed."""
        if self.succeeded:
            return
        if self.critical_failure:
            raise CriticalFailure(self.critical_failure, self.failed_projects)
        raise BuildFailure(self.failed_projects or self.not_attempted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "build_id": self.build_id,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
            "status": self.status,
            "variant": self.variant,
            "build_order": self.build_order,
            "cycles": self.cycles,
            "max_passes": self.max_passes,
            "passes": [p.to_dict() for p in self.passes],
            "failed_projects": self.failed_projects,
            "failed_logs": self.failed_logs,
            "not_attempted": self.not_attempted,
            "release_fallbacks": self.release_fallbacks,
            "critical_failure": self.critical_failure,
            "excluded_projects": self.excluded_projects,
            "errors": self.errors,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


class BuildExecutor:
    """
    Compiles the projects of a dependency graph in build order.

    The executor owns the per-run success set and attempt table; both are
    only touched between project builds, so no locking is involved.
    """

    def __init__(self, config: BuildConfig, compiler: Compiler, generator: Generator):
        self.config = config
        self.compiler = compiler
        self.generator = generator
        self._succeeded: Set[str] = set()

    def _log_path(self, name: str, pass_number: int) -> Path:
        if pass_number == 1:
            return self.config.log_dir / f"{name}.log"
        return self.config.log_dir / f"{name}.pass{pass_number}.log"

    def _collect_failed_log(self, attempt: ProjectAttempt) -> None:
        """Copy a failed project's logs where CI failure reporting picks them up."""
        for log_path in (attempt.log_path, attempt.debug_log_path):
            if not log_path or not log_path.exists():
                continue
            self.config.failed_log_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(log_path, self.config.failed_log_dir / log_path.name)

    def _release_fallback(self, project: Project, attempt: ProjectAttempt) -> ProjectAttempt:
        """
        Rebuild a project in Release after its Debug build failed.

        The Debug log is kept under a separate name. Generation output
        paths depend on the variant, so the project is regenerated before
        compiling.
        """
        name = project.name
        log_path = attempt.log_path
        logger.info(f"Debug build of {name} failed; falling back to Release")

        if log_path is not None and log_path.exists():
            debug_log = log_path.with_name(f"{log_path.stem}.debug-failed.log")
            shutil.move(str(log_path), str(debug_log))
            attempt.debug_log_path = debug_log

        generate_log = self.config.log_dir / f"{name}.generate.log"
        generated = self.generator.generate(project, Variant.RELEASE, generate_log)
        if not generated.ok:
            logger.error(f"Release generation of {name} failed (code {generated.return_code})")
            attempt.status = AttemptStatus.FAILED_FINAL
            attempt.return_code = generated.return_code
            attempt.log_path = generated.log_path or generate_log
            return attempt

        compiled = self.compiler.compile(project, Variant.RELEASE, log_path)
        attempt.return_code = compiled.return_code
        attempt.log_path = compiled.log_path or log_path
        if compiled.ok:
            logger.info(f"Project {name} built in Release after Debug failure")
            attempt.status = AttemptStatus.SUCCEEDED
            attempt.release_fallback = True
        else:
            logger.error(f"Release fallback of {name} failed (code {compiled.return_code})")
            attempt.status = AttemptStatus.FAILED_FINAL
        return attempt

    def _build_project(self, project: Project, pass_number: int, final_pass: bool) -> ProjectAttempt:
        name = project.name
        log_path = self._log_path(name, pass_number)
        logger.info(f"Building {name} ({self.config.variant.value}, pass {pass_number})")

        start = time.monotonic()
        compiled: ToolResult = self.compiler.compile(project, self.config.variant, log_path)
        attempt = ProjectAttempt(
            project=name,
            pass_number=pass_number,
            status=AttemptStatus.SUCCEEDED,
            return_code=compiled.return_code,
            log_path=compiled.log_path or log_path,
        )

        if compiled.ok:
            logger.info(f"Project {name} built successfully")
        elif not final_pass:
            logger.info(f"Project {name} failed in pass {pass_number}; will retry in pass {pass_number + 1}")
            attempt.status = AttemptStatus.FAILED_RETRYING
        elif self.config.variant is Variant.DEBUG:
            attempt = self._release_fallback(project, attempt)
        else:
            logger.error(f"Project {name} failed with code {compiled.return_code}")
            attempt.status = AttemptStatus.FAILED_FINAL

        attempt.duration_seconds = time.monotonic() - start
        return attempt

    def _run_pass(self, graph: DependencyGraph, order: List[str], pass_number: int, max_passes: int) -> PassSummary:
        summary = PassSummary(pass_number=pass_number)
        final_pass = pass_number == max_passes
        cycle_tolerant = max_passes > 1

        logger.info(f"Pass {pass_number} of {max_passes}: {len(order)} projects")

        for index, name in enumerate(order):
            if name in self._succeeded:
                summary.attempts[name] = ProjectAttempt(
                    project=name, pass_number=pass_number, status=AttemptStatus.SKIPPED
                )
                logger.debug(f"Skipping {name}: already built")
                continue

            node = graph[name]
            attempt = self._build_project(node.project, pass_number, final_pass)
            summary.attempts[name] = attempt

            if attempt.status is AttemptStatus.SUCCEEDED:
                self._succeeded.add(name)
                node.status = NodeStatus.SUCCEEDED
                continue

            node.status = NodeStatus.FAILED
            if attempt.status is not AttemptStatus.FAILED_FINAL:
                continue

            self._collect_failed_log(attempt)

            if self.config.is_critical(name):
                logger.error(f"Critical project {name} failed; aborting pass {pass_number}")
                summary.aborted = True
                summary.critical_failure = name
            elif self.config.stop_on_error and not cycle_tolerant:
                logger.error(f"Stopping at first failure ({name})")
                summary.aborted = True

            if summary.aborted:
                summary.not_attempted = [n for n in order[index + 1:] if n not in self._succeeded]
                break

        logger.info(
            f"Pass {pass_number} finished: {len(summary.succeeded)} succeeded, "
            f"{len(summary.failed)} failed, {len(summary.skipped)} skipped"
        )
        return summary

    def run(self, graph: DependencyGraph, plan: SequenceResult, result: Optional[BuildResult] = None) -> BuildResult:
        """
        Build every project of `graph` following `plan`.

        Args:
            graph: Dependency graph (read-only apart from node status)
            plan: Build order and cycles from the sequencer
            result: Optional pre-filled result to complete

        Returns:
            BuildResult with per-pass details
        """
        if result is None:
            result = BuildResult(
                build_id=f"build_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
                started_at=datetime.now().isoformat(),
            )

        max_passes = MAX_PASSES if plan.has_circular_dependencies else 1
        result.variant = self.config.variant.value
        result.build_order = list(plan.order)
        result.cycles = [list(cycle) for cycle in plan.cycles]
        result.max_passes = max_passes
        self._succeeded = set()

        self.config.log_dir.mkdir(parents=True, exist_ok=True)

        for pass_number in range(1, max_passes + 1):
            summary = self._run_pass(graph, plan.order, pass_number, max_passes)
            result.passes.append(summary)

            if summary.critical_failure:
                result.critical_failure = summary.critical_failure
                result.errors.append(f"Critical project {summary.critical_failure} failed")
                break
            if summary.clean:
                result.status = "success"
                break
            if summary.aborted:
                break

        if result.status != "success":
            result.status = "failed"

        attempted = [
            name for name in plan.order
            if any(
                name in p.attempts and p.attempts[name].status is not AttemptStatus.SKIPPED
                for p in result.passes
            )
        ]
        result.failed_projects = [n for n in attempted if n not in self._succeeded]
        result.not_attempted = [n for n in plan.order if n not in attempted]
        result.release_fallbacks = [
            name for p in result.passes for name, a in p.attempts.items() if a.release_fallback
        ]
        for name in result.failed_projects:
            result.errors.append(f"Project {name} failed")

        return result
