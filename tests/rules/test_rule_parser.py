"""Tests for rule frontmatter parsing."""

from pathlib import Path

import pytest

from context_compiler.errors import RuleParseError
from context_compiler.models import IssueKind
from context_compiler.rules.parser import (
    discover_rule_files,
    infer_globs,
    parse_all_rules,
    parse_rule,
    parse_rule_text,
    serialize_rule,
)

VIRTUAL = Path("/virtual/rule.md")


def test_parse_with_all_fields() -> None:
    rule = parse_rule_text(
        "---\n"
        "id: python-style\n"
        "description: Python coding standards\n"
        "domain: backend\n"
        "priority: 80\n"
        "tags: [python, style]\n"
        "always_apply: true\n"
        "globs:\n"
        '  - "*.py"\n'
        "---\n"
        "\n"
        "Always use type hints.\n",
        "python-style.md",
        VIRTUAL,
    )

    assert rule.id == "python-style"
    assert rule.description == "Python coding standards"
    assert rule.frontmatter.domain == "backend"
    assert rule.priority == 80
    assert rule.tags == ("python", "style")
    assert rule.always_apply is True
    assert rule.effective_globs == ("*.py",)
    assert rule.body == "Always use type hints."


def test_parse_applies_defaults() -> None:
    rule = parse_rule_text("---\nid: minimal\n---\nBody.\n", "minimal.md", VIRTUAL)

    assert rule.priority == 50
    assert rule.tags == ()
    assert rule.always_apply is False
    assert rule.description is None


def test_single_glob_string_becomes_tuple() -> None:
    rule = parse_rule_text('---\nid: web\nglobs: "*.ts"\n---\nBody.\n', "web.md", VIRTUAL)

    assert rule.effective_globs == ("*.ts",)


def test_globs_inferred_from_directory() -> None:
    rule = parse_rule_text("---\nid: auth\n---\nBody.\n", "api/auth.md", VIRTUAL)

    assert rule.effective_globs == ("api/**/*", "src/api/**/*", "lib/api/**/*")
    assert infer_globs("top.md") == ("**/*",)


def test_body_line_points_at_first_body_line() -> None:
    rule = parse_rule_text("---\nid: lines\n---\n\n\nFirst line.\n", "lines.md", VIRTUAL)

    assert rule.body_line == 6
    assert rule.body == "First line."


def test_missing_frontmatter_rejected() -> None:
    with pytest.raises(RuleParseError, match="no frontmatter"):
        parse_rule_text("Just text.\n", "plain.md", VIRTUAL)


def test_empty_file_rejected() -> None:
    with pytest.raises(RuleParseError, match="empty"):
        parse_rule_text("  \n", "empty.md", VIRTUAL)


def test_missing_id_rejected() -> None:
    with pytest.raises(RuleParseError, match="Invalid frontmatter"):
        parse_rule_text("---\ndescription: no id\n---\nBody.\n", "noid.md", VIRTUAL)


def test_out_of_range_priority_rejected() -> None:
    with pytest.raises(RuleParseError, match="Invalid frontmatter"):
        parse_rule_text("---\nid: loud\npriority: 150\n---\nBody.\n", "loud.md", VIRTUAL)


def test_invalid_yaml_reports_line() -> None:
    with pytest.raises(RuleParseError) as excinfo:
        parse_rule_text("---\nid: [unclosed\n---\nBody.\n", "broken.md", VIRTUAL)

    assert excinfo.value.line is not None
    assert "Invalid YAML" in excinfo.value.message


def test_parse_rule_rejects_traversal(project) -> None:
    with pytest.raises(RuleParseError) as excinfo:
        parse_rule("../secrets.md", project)

    assert excinfo.value.kind == IssueKind.PATH_TRAVERSAL


def test_parse_all_rules_collects_errors(project, write_rule) -> None:
    write_rule("good.md")
    (project.rules_dir / "bad.md").write_text("no frontmatter here\n", encoding="utf-8")

    rules, errors = parse_all_rules(project)

    assert [rule.id for rule in rules] == ["good"]
    assert [error.path for error in errors] == ["bad.md"]


def test_discover_rule_files_is_sorted_and_nested(project, write_rule) -> None:
    write_rule("zeta.md")
    write_rule("api/auth.md")
    (project.rules_dir / "notes.txt").write_text("ignored", encoding="utf-8")

    assert discover_rule_files(project.rules_dir) == ["api/auth.md", "zeta.md"]


def test_serialize_rule_parses_back(project, write_rule) -> None:
    write_rule("style.md", body="Keep it short.", priority=70, tags=["docs"])
    rule = parse_rule("style.md", project)

    again = parse_rule_text(serialize_rule(rule), "style.md", rule.absolute_path)

    assert again.frontmatter == rule.frontmatter
    assert again.body == rule.body
