import os

from context_compiler.build.changes import detect_changes
from context_compiler.build.graph import DependencyGraph
from context_compiler.build.manifest import Manifest
from context_compiler.rules.parser import parse_rule


def _baseline(project, sources):
    changes = detect_changes(project.root, sources, None)
    return Manifest(sources=changes.entries)


def _bump_mtime(path, delta_ns: int = 5_000_000_000) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + delta_ns))


def test_first_run_reports_everything_added(project, write_rule) -> None:
    write_rule("a.md")

    changes = detect_changes(project.root, [".context/rules/a.md", ".context/project.md"], None)

    assert changes.added == [".context/project.md", ".context/rules/a.md"]
    assert changes.has_changes


def test_detect_changes_is_idempotent(project, write_rule) -> None:
    write_rule("a.md")
    sources = [".context/rules/a.md", ".context/project.md"]
    manifest = _baseline(project, sources)

    changes = detect_changes(project.root, sources, manifest)

    assert not changes.has_changes
    assert changes.changed == []
    assert changes.unchanged == sorted(sources)


def test_touch_without_edit_is_not_a_change(project, write_rule) -> None:
    path = write_rule("a.md")
    sources = [".context/rules/a.md"]
    manifest = _baseline(project, sources)
    _bump_mtime(path)

    changes = detect_changes(project.root, sources, manifest)

    assert changes.touched == sources
    assert not changes.has_changes
    assert changes.entries[sources[0]].mtime_ns == path.stat().st_mtime_ns


def test_edit_and_removal_detected(project, write_rule) -> None:
    edited = write_rule("a.md")
    write_rule("b.md")
    manifest = _baseline(project, [".context/rules/a.md", ".context/rules/b.md"])
    edited.write_text(edited.read_text(encoding="utf-8") + "More guidance.\n", encoding="utf-8")
    _bump_mtime(edited)

    changes = detect_changes(project.root, [".context/rules/a.md"], manifest)

    assert changes.modified == [".context/rules/a.md"]
    assert changes.removed == [".context/rules/b.md"]
    assert changes.changed == [".context/rules/a.md"]


def test_graph_invalidates_transitive_dependents(project, write_rule) -> None:
    write_rule("base.md", body="Base rule.")
    write_rule("mid.md", body='@import "base"')
    write_rule("top.md", body='@include "mid"')
    write_rule("other.md")
    rules = [parse_rule(name, project) for name in ("base.md", "mid.md", "top.md", "other.md")]

    graph = DependencyGraph.for_project(rules, project, [".context/project.md"])

    assert graph.invalidate([".context/rules/base.md"]) == {
        ".context/rules/base.md",
        ".context/rules/mid.md",
        ".context/rules/top.md",
    }
    assert len(graph.invalidate([".context/project.md"])) == 5
    assert graph.dependents_of(".context/rules/mid.md") == {".context/rules/top.md"}
