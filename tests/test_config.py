"""Tests for configuration loading."""

import os
from pathlib import Path

import pytest

from slnbuild.config import BuildConfig, Variant, load_config
from slnbuild.errors import ConfigError


def test_defaults_when_file_missing(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config.variant is Variant.DEBUG
    assert config.critical_projects == ["data", "classes"]
    assert config.stop_on_error is True
    assert config.failed_log_dir == config.log_dir / "failed"


def test_yaml_values_and_relative_paths(tmp_path):
    cfg = tmp_path / "build.config.yaml"
    cfg.write_text(
        "solution_path: app/app.sln\n"
        "variant: release\n"
        "log_dir: out/logs\n"
        "critical_projects: [core]\n"
        "stop_on_error: false\n"
        "compiler:\n"
        "  command: [make, '{project_name}']\n"
        "  timeout: 30\n"
        "generator:\n"
        "  app_descriptor: '{project_dir}/app.xml'\n"
    )
    config = load_config(cfg)

    assert config.solution_path == tmp_path / "app" / "app.sln"
    assert config.variant is Variant.RELEASE
    assert config.log_dir == tmp_path / "out" / "logs"
    assert config.failed_log_dir == tmp_path / "out" / "logs" / "failed"
    assert config.critical_projects == ["core"]
    assert config.stop_on_error is False
    assert config.compiler.command == ["make", "{project_name}"]
    assert config.compiler.timeout == 30
    assert config.generator.app_descriptor == "{project_dir}/app.xml"
    assert config.generator.command[0] == "{tool_bin}/generator"


def test_environment_aliases(tmp_path, monkeypatch):
    monkeypatch.setenv("BUILD_CONFIGURATION", "Release")
    monkeypatch.setenv("TOOL_BIN_PATH", str(tmp_path / "bin"))
    config = load_config(tmp_path / "missing.yaml")
    assert config.variant is Variant.RELEASE
    assert config.tool_bin_path == tmp_path / "bin"


def test_placeholder_env_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("SLNBUILD_VARIANT", "changeme")
    assert load_config(tmp_path / "missing.yaml").variant is Variant.DEBUG


def test_env_file(tmp_path, monkeypatch):
    (tmp_path / ".env.local").write_text('# local settings\nSLNBUILD_VARIANT="Release"\n')
    config = load_config(tmp_path / "missing.yaml")
    assert config.variant is Variant.RELEASE


def test_env_file_stays_with_its_directory(tmp_path):
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    (first / ".env.local").write_text("SLNBUILD_VARIANT=Release\n")

    assert load_config(first / "build.config.yaml").variant is Variant.RELEASE
    assert load_config(second / "build.config.yaml").variant is Variant.DEBUG
    assert "SLNBUILD_VARIANT" not in os.environ


def test_process_env_beats_env_file(tmp_path, monkeypatch):
    (tmp_path / ".env.local").write_text("SLNBUILD_VARIANT=Release\n")
    monkeypatch.setenv("BUILD_CONFIGURATION", "Debug")
    assert load_config(tmp_path / "missing.yaml").variant is Variant.DEBUG


def test_overrides_win_and_none_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("SLNBUILD_VARIANT", "Release")
    config = load_config(tmp_path / "missing.yaml", {"variant": "Debug", "log_dir": None})
    assert config.variant is Variant.DEBUG
    assert config.log_dir == Path("build_logs")


def test_invalid_variant():
    with pytest.raises(ConfigError):
        BuildConfig(variant="Profile")


def test_non_mapping_yaml(tmp_path):
    cfg = tmp_path / "build.config.yaml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(cfg)


def test_validate_reports_issues(tmp_path):
    config = BuildConfig(solution_path=tmp_path / "none.sln", tool_bin_path=tmp_path / "nobin")
    issues = config.validate()
    assert any("Solution not found" in issue for issue in issues)
    assert any("Tool bin" in issue for issue in issues)


def test_validate_clean(tmp_path):
    sln = tmp_path / "app.sln"
    sln.write_text("")
    config = BuildConfig(solution_path=sln, tool_bin_path=tmp_path)
    assert config.validate() == []


def test_is_critical():
    config = BuildConfig(critical_projects=["data"])
    assert config.is_critical("data")
    assert not config.is_critical("classes")


# ── Critical project names ───────────────────────────────────

def test_critical_projects_from_string():
    config = BuildConfig(critical_projects="data, classes")
    assert config.critical_projects == ["data", "classes"]
    assert not config.is_critical("at")
    assert not config.is_critical("data, classes")


def test_critical_projects_yaml_scalar(tmp_path):
    cfg = tmp_path / "build.config.yaml"
    cfg.write_text("critical_projects: data\n")
    assert load_config(cfg).critical_projects == ["data"]


@pytest.mark.parametrize("value", [None, 7, [1, "data"], {"data": True}])
def test_critical_projects_rejects_other_types(value):
    with pytest.raises(ConfigError):
        BuildConfig(critical_projects=value)


# ── Command templates ────────────────────────────────────────

def test_validate_reports_unescaped_braces(tmp_path):
    config = BuildConfig(tool_bin_path=tmp_path)
    config.compiler.command = ["msbuild", "/p:ProjectGuid={ABC-123}"]
    issues = config.validate()
    assert any("compiler template" in issue and "{ABC-123}" in issue for issue in issues)


def test_validate_reports_unknown_placeholder(tmp_path):
    config = BuildConfig(tool_bin_path=tmp_path)
    config.generator.command = ["gen", "{app}"]
    config.generator.app_descriptor = "{project_dir}/{}.app"
    issues = config.validate()
    assert any("generator template" in issue for issue in issues)
    assert any("app_descriptor template" in issue for issue in issues)


def test_validate_accepts_escaped_braces(tmp_path):
    sln = tmp_path / "app.sln"
    sln.write_text("")
    config = BuildConfig(solution_path=sln, tool_bin_path=tmp_path)
    config.compiler.command = ["msbuild", "{project_path}", "/p:ProjectGuid={{ABC-123}}"]
    config.generator.command = ["gen", "{app_descriptor}", "{log_path}"]
    assert config.validate() == []
