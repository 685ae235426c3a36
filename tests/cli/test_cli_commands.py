"""Tests for the ctx command line."""

import json
from pathlib import Path

from context_compiler.__main__ import cli, main


def _args(project, *args: str) -> list[str]:
    return ["--root", str(project.root), *args]


def test_build_writes_outputs(project, write_rule, cli_runner) -> None:
    write_rule("style.md")

    result = cli_runner.invoke(cli, _args(project, "build", "--target", "claude"))

    assert result.exit_code == 0, result.output
    assert (project.root / "CLAUDE.md").exists()
    assert project.manifest_path.exists()
    assert not project.lock_path.exists()


def test_build_all_default_targets(project, write_rule, cli_runner) -> None:
    write_rule("style.md")

    result = cli_runner.invoke(cli, _args(project, "build", "-q"))

    assert result.exit_code == 0, result.output
    assert (project.root / "CLAUDE.md").exists()
    assert (project.root / "AGENTS.md").exists()
    assert (project.root / ".cursor" / "rules" / "style.mdc").exists()


def test_build_check_fails_before_first_build(project, write_rule, cli_runner) -> None:
    write_rule("style.md")

    result = cli_runner.invoke(cli, _args(project, "build", "--check", "-t", "claude"))

    assert result.exit_code == 1
    assert not (project.root / "CLAUDE.md").exists()


def test_build_validation_failure_exits_one(project, write_rule, cli_runner) -> None:
    write_rule("a.md", rule_id="dup")
    write_rule("b.md", rule_id="dup")

    result = cli_runner.invoke(cli, _args(project, "build"))

    assert result.exit_code == 1


def test_build_without_context_dir_exits_two(tmp_path: Path, cli_runner) -> None:
    result = cli_runner.invoke(cli, ["--root", str(tmp_path), "build"])

    assert result.exit_code == 2
    assert ".context" in result.output


def test_build_with_invalid_config_exits_two(project, write_rule, cli_runner) -> None:
    write_rule("style.md")
    project.config_path.write_text("compile:\n  claude:\n    strategy: random\n", encoding="utf-8")

    result = cli_runner.invoke(cli, _args(project, "build"))

    assert result.exit_code == 2


def test_lint_json_reports_issues(project, write_rule, cli_runner) -> None:
    write_rule("a.md", rule_id="dup")
    write_rule("b.md", rule_id="dup", body="See [missing](missing.md).")

    result = cli_runner.invoke(cli, _args(project, "lint", "--json"))

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["success"] is False
    assert payload["rules_linted"] == 2
    assert sorted(error["type"] for error in payload["errors"]) == [
        "dead-link",
        "duplicate-id",
        "duplicate-id",
    ]


def test_lint_clean_project(project, write_rule, cli_runner) -> None:
    write_rule("style.md")

    result = cli_runner.invoke(cli, _args(project, "lint"))

    assert result.exit_code == 0, result.output
    assert "No issues found." in result.output


def test_lint_limited_to_given_files(project, write_rule, cli_runner) -> None:
    write_rule("clean.md")
    write_rule("broken.md", body="[gone](gone.md)")

    result = cli_runner.invoke(
        cli, _args(project, "lint", "--json", ".context/rules/clean.md")
    )

    assert result.exit_code == 0
    assert json.loads(result.stdout)["rules_linted"] == 1


def test_verify_before_and_after_build(project, write_rule, cli_runner) -> None:
    write_rule("style.md")

    before = cli_runner.invoke(cli, _args(project, "verify"))
    cli_runner.invoke(cli, _args(project, "build", "-t", "claude"))
    after = cli_runner.invoke(cli, _args(project, "verify", "--json"))

    assert before.exit_code == 1
    assert after.exit_code == 0, after.output
    payload = json.loads(after.stdout)
    assert payload["outputs"] == [{"path": "CLAUDE.md", "target": "claude", "status": "ok"}]


def test_verify_detects_hand_edits(project, write_rule, cli_runner) -> None:
    write_rule("style.md", body="Original.")
    cli_runner.invoke(cli, _args(project, "build", "-t", "claude"))
    output = project.root / "CLAUDE.md"
    output.write_text(output.read_text(encoding="utf-8").replace("Original.", "Edited."), encoding="utf-8")

    result = cli_runner.invoke(cli, _args(project, "verify", "--json"))

    assert result.exit_code == 1
    assert json.loads(result.stdout)["outputs"][0]["status"] == "modified"


def test_main_returns_exit_codes(project, write_rule) -> None:
    write_rule("style.md")

    assert main(_args(project, "build", "-q", "-t", "claude")) == 0
    assert main(_args(project, "build", "--check", "-q", "-t", "agents")) == 1
    assert main(["--root", str(project.root / "missing"), "lint"]) == 2
