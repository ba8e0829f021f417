"""
Configuration loader for build settings.

Supports loading from (later sources win):
1. Built-in defaults
2. YAML config file (build.config.yaml)
3. Environment variables (.env.local or CI secrets)
4. Explicit overrides (command line flags)

Environment Variable Aliases (checked in order):
- Solution:   SLNBUILD_SOLUTION
- Variant:    SLNBUILD_VARIANT, BUILD_CONFIGURATION
- Tool bin:   SLNBUILD_TOOL_BIN, TOOL_BIN_PATH
- Config dir: SLNBUILD_CONFIG_DIR
- Log dir:    SLNBUILD_LOG_DIR

Usage:
    from slnbuild.config import load_config

    config = load_config()
    issues = config.validate()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from slnbuild.errors import ConfigError

logger = logging.getLogger(__name__)

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = PROJECT_ROOT / "build.config.yaml"

DEFAULT_CRITICAL_PROJECTS = ["data", "classes"]

DEFAULT_COMPILE_COMMAND = [
    "{tool_bin}/msbuild",
    "{project_path}",
    "/nologo",
    "/p:Configuration={variant}",
]

DEFAULT_GENERATE_COMMAND = [
    "{tool_bin}/generator",
    "-app", "{app_descriptor}",
    "-config", "{variant}",
    "-configdir", "{config_dir}",
]

# Names usable as {placeholders} in tool command templates
COMMAND_PLACEHOLDERS = frozenset({
    "project_path", "project_dir", "project_name", "variant",
    "tool_bin", "config_dir", "log_path",
})
GENERATOR_PLACEHOLDERS = COMMAND_PLACEHOLDERS | {"app_descriptor"}

# Order matters: first valid value found wins
ENV_VAR_ALIASES = {
    "solution_path": ["SLNBUILD_SOLUTION"],
    "variant": ["SLNBUILD_VARIANT", "BUILD_CONFIGURATION"],
    "tool_bin_path": ["SLNBUILD_TOOL_BIN", "TOOL_BIN_PATH"],
    "config_dir": ["SLNBUILD_CONFIG_DIR"],
    "log_dir": ["SLNBUILD_LOG_DIR"],
}


class Variant(str, Enum):
    """Build configuration variant."""
    DEBUG = "Debug"
    RELEASE = "Release"

    @classmethod
    def parse(cls, value: Any) -> "Variant":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for variant in cls:
            if variant.value.lower() == text:
                return variant
        raise ConfigError(f"Unknown build variant: {value!r} (expected Debug or Release)")


@dataclass
class ToolSettings:
    """How one external tool is launched."""
    command: List[str] = field(default_factory=list)
    timeout: Optional[float] = None


@dataclass
class GeneratorSettings(ToolSettings):
    app_descriptor: str = "{project_dir}/{project_name}.app"


@dataclass
class BuildConfig:
    """
    Settings for one build run.

    Passed explicitly to the executor and the tool wrappers; nothing in
    the package reads configuration from module state.
    """
    solution_path: Optional[Path] = None
    variant: Variant = Variant.DEBUG
    tool_bin_path: Path = Path(".")
    config_dir: Path = Path(".")
    log_dir: Path = Path("build_logs")
    failed_log_dir: Optional[Path] = None
    critical_projects: List[str] = field(default_factory=lambda: list(DEFAULT_CRITICAL_PROJECTS))
    stop_on_error: bool = True
    dry_run: bool = False
    compiler: ToolSettings = field(default_factory=lambda: ToolSettings(command=list(DEFAULT_COMPILE_COMMAND)))
    generator: GeneratorSettings = field(
        default_factory=lambda: GeneratorSettings(command=list(DEFAULT_GENERATE_COMMAND))
    )

    def __post_init__(self):
        self.variant = Variant.parse(self.variant)
        if self.solution_path is not None:
            self.solution_path = Path(self.solution_path)
        self.tool_bin_path = Path(self.tool_bin_path)
        self.config_dir = Path(self.config_dir)
        self.log_dir = Path(self.log_dir)
        if self.failed_log_dir is None:
            self.failed_log_dir = self.log_dir / "failed"
        else:
            self.failed_log_dir = Path(self.failed_log_dir)
        self.critical_projects = _project_names(self.critical_projects)

    def is_critical(self, project_name: str) -> bool:
        return project_name in self.critical_projects

    def validate(self) -> List[str]:
        """
        Validate settings that can be checked before building.
        Returns a list of issues (empty if all is well).
        """
        issues = []

        if self.solution_path is None:
            issues.append("No solution configured. Pass one on the command line or set SLNBUILD_SOLUTION")
        elif not self.solution_path.is_file():
            issues.append(f"Solution not found: {self.solution_path}")

        if not self.dry_run and not self.tool_bin_path.is_dir():
            issues.append(f"Tool bin directory not found: {self.tool_bin_path}")

        if not self.compiler.command:
            issues.append("Compiler command is empty")

        issues.extend(_template_issues("compiler", self.compiler.command, COMMAND_PLACEHOLDERS))
        issues.extend(_template_issues("generator", self.generator.command, GENERATOR_PLACEHOLDERS))
        issues.extend(_template_issues(
            "generator app_descriptor", [self.generator.app_descriptor], COMMAND_PLACEHOLDERS
        ))

        return issues


def _read_env_file(env_file: Path) -> Dict[str, str]:
    """
    Read KEY=VALUE pairs from .env.local, if present.

    The values are only consulted by this load; os.environ is left alone.
    """
    values: Dict[str, str] = {}
    if not env_file.exists():
        return values
    with open(env_file, "r") as f:
        for raw_line in f:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]
            values[key.strip()] = value
    return values


def _is_placeholder(value: Optional[str]) -> bool:
    """Unset, empty, or a template value such as YOUR_TOOL_BIN."""
    if not value:
        return True
    lowered = value.strip().lower()
    return lowered.startswith(("your_", "your-")) or lowered in ("changeme", "placeholder")


def _get_env_with_aliases(alias_key: str, env_file: Optional[Mapping[str, str]] = None):
    """
    Look up a setting under each of its variable names.

    The process environment wins over .env.local values. Returns
    (value, var_name), or (None, None) when nothing usable is set.
    """
    sources = [os.environ, env_file or {}]
    for source in sources:
        for var_name in ENV_VAR_ALIASES.get(alias_key, []):
            value = source.get(var_name)
            if not _is_placeholder(value):
                return value, var_name
    return None, None


def _project_names(value: Any) -> List[str]:
    """Accept a list of names or a comma-separated string."""
    if isinstance(value, str):
        return [name.strip() for name in value.split(",") if name.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(name, str) for name in value):
        return list(value)
    raise ConfigError(f"critical_projects must be a list of project names, got {value!r}")


def _template_issues(label: str, templates: List[str], placeholders: frozenset) -> List[str]:
    """Report command parts that str.format() cannot fill."""
    sample = {name: name for name in placeholders}
    issues = []
    for part in templates:
        try:
            part.format(**sample)
        except (KeyError, IndexError, ValueError) as e:
            issues.append(
                f"Bad {label} template {part!r}: {e!r} (write literal braces as {{{{ and }}}})"
            )
    return issues


def _load_yaml_config(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        logger.warning(f"Config not found: {config_path}, using defaults")
        return {}

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")
    return data


def _tool_settings(raw: Mapping[str, Any], defaults: ToolSettings, cls=ToolSettings) -> ToolSettings:
    kwargs: Dict[str, Any] = {
        "command": list(raw.get("command", defaults.command)),
        "timeout": raw.get("timeout", defaults.timeout),
    }
    if cls is GeneratorSettings:
        kwargs["app_descriptor"] = raw.get("app_descriptor", defaults.app_descriptor)
    return cls(**kwargs)


def _resolve(base: Path, value: Any) -> Path:
    path = Path(value)
    return path if path.is_absolute() else base / path


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> BuildConfig:
    """
    Build a BuildConfig from defaults, YAML, environment and overrides.

    Relative paths in the YAML file are resolved against the file's
    directory. Override values of None are ignored so argparse results
    can be passed straight through.
    """
    config_path = Path(config_path) if config_path else CONFIG_PATH
    base_dir = config_path.parent

    env_file = _read_env_file(base_dir / ".env.local")
    raw = _load_yaml_config(config_path)

    settings: Dict[str, Any] = {}
    for key in ("solution_path", "tool_bin_path", "config_dir", "log_dir", "failed_log_dir"):
        if raw.get(key):
            settings[key] = _resolve(base_dir, raw[key])
    for key in ("variant", "critical_projects", "stop_on_error", "dry_run"):
        if key in raw:
            settings[key] = raw[key]

    defaults = BuildConfig()
    settings["compiler"] = _tool_settings(raw.get("compiler") or {}, defaults.compiler)
    settings["generator"] = _tool_settings(
        raw.get("generator") or {}, defaults.generator, cls=GeneratorSettings
    )

    for key in ENV_VAR_ALIASES:
        value, var_name = _get_env_with_aliases(key, env_file)
        if value:
            logger.debug(f"Using {key} from ${var_name}")
            settings[key] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value

    return BuildConfig(**settings)
