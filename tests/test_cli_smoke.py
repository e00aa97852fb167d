"""Smoke tests for the gitmods CLI."""
import pytest
from click.testing import CliRunner

from gitmods.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.mark.parametrize("command", [[], ["status"], ["update"], ["tag"], ["export"]])
def test_help_returns_zero_exit_code(runner, command):
    result = runner.invoke(main, [*command, "--help"])
    assert result.exit_code == 0
    assert "Usage" in result.output


def test_update_installs_dependencies(runner, one_dependency):
    project = one_dependency["project"]

    result = runner.invoke(main, ["update", "--cwd", str(project)])

    assert result.exit_code == 0, result.output
    assert "[OK] 2 repositories inspected, 1 changed" in result.output
    assert (one_dependency["dep1"] / "file.txt").exists()


def test_update_with_malformed_version_override(runner, one_dependency):
    result = runner.invoke(main, ["update", "--cwd", str(one_dependency["project"]), "--version", "dep1"])
    assert result.exit_code == 3


def test_update_with_unknown_version_override(runner, one_dependency):
    result = runner.invoke(
        main, ["update", "--cwd", str(one_dependency["project"]), "--version", "nope=1.0.0"]
    )
    assert result.exit_code == 3


def test_invalid_config_file(runner, one_dependency):
    project = one_dependency["project"]
    (project / ".gitmodsrc").write_text("{not json")

    assert runner.invoke(main, ["update", "--cwd", str(project)]).exit_code == 7
    assert runner.invoke(main, ["status", "--cwd", str(project)]).exit_code == 7


def test_status_lists_modules(runner, one_dependency):
    project = one_dependency["project"]
    runner.invoke(main, ["update", "--cwd", str(project)])

    result = runner.invoke(main, ["status", "--cwd", str(project)])

    assert result.exit_code == 0
    row = next(line for line in result.output.splitlines() if line.startswith("dep1"))
    assert row.split() == ["dep1", "master", "master", "none"]


def test_tag_non_interactive(runner, one_dependency):
    project = one_dependency["project"]
    runner.invoke(main, ["update", "--cwd", str(project)])

    result = runner.invoke(main, ["tag", "--cwd", str(project), "--no-interactive", "--increment", "patch"])

    assert result.exit_code == 0, result.output
    assert "[NEW] main: 0.1.0" in result.output
    assert "[NEW] dep1: 0.1.0" in result.output


def test_tag_declined(runner, one_dependency):
    project = one_dependency["project"]
    runner.invoke(main, ["update", "--cwd", str(project)])

    result = runner.invoke(main, ["tag", "--cwd", str(project)], input="n\n")

    assert result.exit_code == 0
    assert "Commit changes?" in result.output


def test_export(runner, one_dependency, tmp_path):
    project = one_dependency["project"]
    runner.invoke(main, ["update", "--cwd", str(project)])
    destination = tmp_path / "out"

    result = runner.invoke(main, ["export", str(destination), "--cwd", str(project)])

    assert result.exit_code == 0
    assert (destination / "gitmods_modules" / "dep1" / "file.txt").exists()
