"""Tests for static analysis of rule sets."""

from context_compiler.analysis import (
    analyze_rules,
    find_circular_references,
    find_dead_links,
    find_duplicate_ids,
    find_ghost_rule,
)
from context_compiler.analysis.validator import check_token_limits, find_cycles
from context_compiler.models import IssueKind, Severity
from context_compiler.rules.parser import parse_rule


# --- duplicate ids ---


def test_every_member_of_a_collision_group_is_reported(make_rule) -> None:
    rules = [
        make_rule("shared", source_path="a.md"),
        make_rule("shared", source_path="b.md"),
        make_rule("shared", source_path="nested/c.md"),
        make_rule("unique", source_path="d.md"),
    ]

    issues = find_duplicate_ids(rules)

    assert len(issues) == 3
    assert sorted(issue.path for issue in issues) == ["a.md", "b.md", "nested/c.md"]
    assert all(issue.severity == Severity.ERROR for issue in issues)
    first = next(issue for issue in issues if issue.path == "a.md")
    assert first.message == "Duplicate rule ID 'shared' also found in: b.md, nested/c.md"


def test_no_duplicates_no_issues(make_rule) -> None:
    assert find_duplicate_ids([make_rule("a"), make_rule("b")]) == []


# --- dead links ---


def test_dead_link_reported_with_file_line(project, write_rule) -> None:
    write_rule("style.md", rule_id="x", body="Intro line.\nSee [guide](../../docs/missing.md).")
    rule = parse_rule("style.md", project)

    issues = find_dead_links(rule, project.root)

    assert len(issues) == 1
    assert issues[0].kind == IssueKind.DEAD_LINK
    assert issues[0].message == "Dead link found: ../../docs/missing.md"
    assert issues[0].line == 6


def test_existing_and_external_links_pass(project, write_rule) -> None:
    (project.root / "docs").mkdir()
    (project.root / "docs" / "guide.md").write_text("# Guide\n", encoding="utf-8")
    (project.root / "README.md").write_text("# Readme\n", encoding="utf-8")
    write_rule(
        "style.md",
        body=(
            "[guide](../../docs/guide.md#setup)\n"
            "[readme](/README.md)\n"
            "[site](https://example.com/missing)\n"
            "[anchor](#top)\n"
            "[mail](mailto:team@example.com)"
        ),
    )
    rule = parse_rule("style.md", project)

    assert find_dead_links(rule, project.root) == []


def test_link_escaping_project_is_traversal(project, write_rule) -> None:
    write_rule("style.md", body="[outside](../../../outside.md)")
    rule = parse_rule("style.md", project)

    issues = find_dead_links(rule, project.root)

    assert [issue.kind for issue in issues] == [IssueKind.PATH_TRAVERSAL]


# --- circular references ---


def test_three_rule_cycle_reported_once(make_rule) -> None:
    rules = [
        make_rule("A", body='@import "B"'),
        make_rule("B", body='@include "C"'),
        make_rule("C", body="@import 'A'"),
    ]

    issues = find_circular_references(rules)

    assert len(issues) == 1
    assert issues[0].kind == IssueKind.CIRCULAR_REFERENCE
    assert issues[0].message == "Circular reference detected: A -> B -> C -> A"


def test_self_reference_reported_once(make_rule) -> None:
    issues = find_circular_references([make_rule("A", body='@import "A"\n@import "A"')])

    assert len(issues) == 1
    assert "A -> A" in issues[0].message


def test_acyclic_and_unknown_references_pass(make_rule) -> None:
    rules = [
        make_rule("a", body='@import "b"\n@import "missing"'),
        make_rule("b", body='@import "c"'),
        make_rule("c"),
    ]

    assert find_circular_references(rules) == []


def test_cycles_are_canonical_regardless_of_entry_point() -> None:
    graph = {"c": ["a"], "a": ["b"], "b": ["c"], "d": ["d", "a"]}

    assert sorted(find_cycles(graph)) == [("a", "b", "c", "a"), ("d", "d")]


# --- ghost rules ---


def test_ghost_rule_warns_when_globs_match_nothing(make_rule) -> None:
    rule = make_rule("docs", globs=("docs/**/*.rst",))

    issue = find_ghost_rule(rule, ["src/app.py"])

    assert issue is not None
    assert issue.severity == Severity.WARNING
    assert issue.kind == IssueKind.GHOST_RULE


def test_ghost_check_skips_matching_and_always_apply(make_rule) -> None:
    assert find_ghost_rule(make_rule("py", globs=("*.py",)), ["src/app.py"]) is None
    assert find_ghost_rule(make_rule("all", globs=("*.rst",), always_apply=True), []) is None


# --- token pressure ---


def test_token_pressure_warns_over_ninety_percent(make_rule) -> None:
    rules = [make_rule("big", body="word " * 400)]

    issues = check_token_limits(rules, {"claude": 100, "agents": 100_000})

    assert len(issues) == 1
    assert issues[0].severity == Severity.WARNING
    assert "claude" in issues[0].message


# --- aggregate ---


def test_analyze_rules_splits_errors_and_warnings(project, write_rule) -> None:
    write_rule("one.md", rule_id="same")
    write_rule("two.md", rule_id="same")
    write_rule("docs/ghost.md", globs=["*.rst"])
    rules = [parse_rule(name, project) for name in ("one.md", "two.md", "docs/ghost.md")]

    report = analyze_rules(rules, project)

    assert not report.valid
    assert report.rules_analyzed == 3
    assert {issue.kind for issue in report.errors} == {IssueKind.DUPLICATE_ID}
    assert {issue.kind for issue in report.warnings} == {IssueKind.GHOST_RULE}


def test_analyze_clean_rules_is_valid(project, write_rule) -> None:
    write_rule("python.md", globs=["*.py"])
    rules = [parse_rule("python.md", project)]

    report = analyze_rules(rules, project, {"claude": 4000})

    assert report.valid
    assert report.issues == []
