"""Parse rule documents with YAML frontmatter."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

import yaml

from context_compiler.constants import RULE_SUFFIX
from context_compiler.errors import PathSecurityError, RuleParseError
from context_compiler.layout import ProjectLayout
from context_compiler.models import IssueKind
from context_compiler.rules.models import Rule
from context_compiler.rules.path_security import validate_relative_path, validate_symlink
from context_compiler.rules.schema import validate_frontmatter

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


def infer_globs(source_path: str) -> tuple[str, ...]:
    parent = PurePosixPath(source_path).parent.as_posix()
    if parent in ("", "."):
        return ("**/*",)
    return (f"{parent}/**/*", f"src/{parent}/**/*", f"lib/{parent}/**/*")


def parse_rule_text(text: str, source_path: str, absolute_path: Path) -> Rule:
    if not text.strip():
        raise RuleParseError(source_path, "Rule file is empty")

    match = _FRONTMATTER_RE.match(text)
    if match is None:
        raise RuleParseError(
            source_path,
            'Rule file has no frontmatter; add YAML frontmatter with at least an "id" field',
        )

    try:
        raw = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 2 if mark is not None else None
        raise RuleParseError(source_path, f"Invalid YAML frontmatter ({exc})", line=line) from exc

    if not raw:
        raise RuleParseError(
            source_path,
            'Rule file has no frontmatter; add YAML frontmatter with at least an "id" field',
        )
    frontmatter = validate_frontmatter(raw, source_path)

    remainder = text[match.end() :]
    stripped = remainder.lstrip()
    skipped = remainder[: len(remainder) - len(stripped)]
    body_line = text[: match.end()].count("\n") + skipped.count("\n") + 1

    inferred = infer_globs(source_path)
    return Rule(
        frontmatter=frontmatter,
        body=stripped.rstrip(),
        source_path=source_path,
        absolute_path=absolute_path,
        effective_globs=frontmatter.globs or inferred,
        inferred_globs=inferred,
        body_line=body_line,
    )


def parse_rule(source_path: str, layout: ProjectLayout) -> Rule:
    try:
        validate_relative_path(source_path, layout.root)
        absolute_path = layout.rules_dir / source_path
        validate_symlink(absolute_path, layout.root)
    except PathSecurityError as exc:
        raise RuleParseError(
            source_path, f"Security violation: {exc}", kind=IssueKind.PATH_TRAVERSAL
        ) from exc

    try:
        text = absolute_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise RuleParseError(source_path, f"Failed to read rule file ({exc})") from exc
    return parse_rule_text(text, source_path, absolute_path)


def discover_rule_files(rules_dir: Path) -> list[str]:
    if not rules_dir.exists():
        return []
    found: list[str] = []
    for path in rules_dir.rglob(f"*{RULE_SUFFIX}"):
        if path.is_file() or path.is_symlink():
            found.append(path.relative_to(rules_dir).as_posix())
    return sorted(found)


def parse_all_rules(layout: ProjectLayout) -> tuple[list[Rule], list[RuleParseError]]:
    rules: list[Rule] = []
    errors: list[RuleParseError] = []
    for source_path in discover_rule_files(layout.rules_dir):
        try:
            rules.append(parse_rule(source_path, layout))
        except RuleParseError as exc:
            errors.append(exc)
    return rules, errors


def serialize_rule(rule: Rule) -> str:
    fm = rule.frontmatter.as_dict()
    parts = [
        "---",
        yaml.safe_dump(fm, default_flow_style=False, sort_keys=False).rstrip(),
        "---",
        "",
        rule.body,
    ]
    return "\n".join(parts) + "\n"
