"""Shared fixtures: solution files on disk and in-process tool fakes."""

import hashlib
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest

from slnbuild.config import BuildConfig, Variant
from slnbuild.pipeline.tools import ToolResult

MSBUILD_NS = "http://schemas.microsoft.com/developer/msbuild/2003"


def guid_for(name: str) -> str:
    h = hashlib.md5(name.encode("utf-8")).hexdigest().upper()
    return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:]}"


def write_project(
    root: Path,
    name: str,
    deps: Iterable[str] = (),
    output_type: str = "Library",
    external: Iterable[str] = (),
    namespaced: bool = True,
) -> Path:
    """Write <root>/<name>/<name>.vbproj referencing `deps` by GUID."""
    refs = []
    for dep in deps:
        refs.append(
            f'    <ProjectReference Include="..\\{dep}\\{dep}.vbproj">\n'
            f"      <Project>{{{guid_for(dep)}}}</Project>\n"
            f"      <Name>{dep}</Name>\n"
            f"    </ProjectReference>"
        )
    for ext in external:
        refs.append(
            f'    <ProjectReference Include="..\\..\\vendor\\{ext}.vbproj">\n'
            f"      <Project>{{{ext}}}</Project>\n"
            f"      <Name>{ext}</Name>\n"
            f"    </ProjectReference>"
        )
    xmlns = f' xmlns="{MSBUILD_NS}"' if namespaced else ""
    content = (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<Project ToolsVersion="4.0"{xmlns}>\n'
        "  <PropertyGroup>\n"
        f"    <ProjectGuid>{{{guid_for(name)}}}</ProjectGuid>\n"
        f"    <OutputType>{output_type}</OutputType>\n"
        "  </PropertyGroup>\n"
        "  <ItemGroup>\n"
        + "\n".join(refs)
        + "\n  </ItemGroup>\n"
        "</Project>\n"
    )
    path = root / name / f"{name}.vbproj"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def write_solution(root: Path, names: Iterable[str], extra_lines: Iterable[str] = ()) -> Path:
    lines = [
        "Microsoft Visual Studio Solution File, Format Version 12.00",
        "# Visual Studio 15",
    ]
    for name in names:
        lines.append(
            f'Project("{{F184B08F-C81C-45F6-A57F-5ABD9991F28F}}") = "{name}", '
            f'"{name}\\{name}.vbproj", "{{{guid_for(name)}}}"'
        )
        lines.append("EndProject")
    lines.extend(extra_lines)
    lines.append("Global")
    lines.append("EndGlobal")
    path = root / "app.sln"
    path.write_text("\n".join(lines) + "\n")
    return path


def make_solution(root: Path, projects: Dict[str, List[str]]) -> Path:
    """Write a solution and one project per key, depending on the listed names."""
    for name, deps in projects.items():
        write_project(root, name, deps)
    return write_solution(root, projects)


class FakeCompiler:
    """
    Records compile calls.

    fail_variants: project -> variants that always fail
    fail_times: project -> number of initial calls that fail
    """

    def __init__(
        self,
        fail_variants: Optional[Dict[str, Set[Variant]]] = None,
        fail_times: Optional[Dict[str, int]] = None,
    ):
        self.fail_variants = fail_variants or {}
        self.fail_times = dict(fail_times or {})
        self.calls: List[Tuple[str, Variant]] = []

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def compile(self, project, variant, log_path):
        self.calls.append((project.name, variant))
        failed = variant in self.fail_variants.get(project.name, set())
        if self.fail_times.get(project.name, 0) > 0:
            self.fail_times[project.name] -= 1
            failed = True
        code = 1 if failed else 0
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(f"{project.name} {variant.value} exit {code}\n")
        return ToolResult(return_code=code, log_path=log_path)


class FakeGenerator:
    def __init__(self, fail: Iterable[str] = ()):
        self.fail = set(fail)
        self.calls: List[Tuple[str, Variant]] = []

    def generate(self, project, variant, log_path):
        self.calls.append((project.name, variant))
        code = 1 if project.name in self.fail else 0
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(f"generate {project.name} {variant.value} exit {code}\n")
        return ToolResult(return_code=code, log_path=log_path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "SLNBUILD_SOLUTION", "SLNBUILD_VARIANT", "BUILD_CONFIGURATION",
        "SLNBUILD_TOOL_BIN", "TOOL_BIN_PATH", "SLNBUILD_CONFIG_DIR", "SLNBUILD_LOG_DIR",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config(tmp_path):
    return BuildConfig(log_dir=tmp_path / "logs", tool_bin_path=tmp_path)


@pytest.fixture
def release_config(tmp_path):
    return BuildConfig(log_dir=tmp_path / "logs", tool_bin_path=tmp_path, variant=Variant.RELEASE)
