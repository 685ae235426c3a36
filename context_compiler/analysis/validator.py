"""Static analysis over a parsed rule set.

Five independent checks run over the whole set. Structural findings
(duplicate ids, dead links, path traversal, circular references) are
errors and block compilation; advisory findings (ghost rules, token
pressure) are warnings. Nothing here raises for a domain condition: every
finding is returned as a ``ValidationIssue``.
"""

from __future__ import annotations

import json
import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from context_compiler.analysis.patterns import find_references, iter_local_links, strip_anchor
from context_compiler.constants import TOKEN_PRESSURE_RATIO
from context_compiler.errors import RuleParseError
from context_compiler.estimator import estimate_tokens
from context_compiler.layout import ProjectLayout
from context_compiler.models import IssueKind, Severity, ValidationIssue
from context_compiler.rules.globs import iter_project_files, match_any
from context_compiler.rules.models import Rule

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    rules_analyzed: int = 0

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.errors + self.warnings

    def extend(self, issues: Sequence[ValidationIssue]) -> None:
        for issue in issues:
            (self.errors if issue.is_error else self.warnings).append(issue)


def _error(kind: IssueKind, message: str, path: str, line: Optional[int] = None) -> ValidationIssue:
    return ValidationIssue(kind=kind, severity=Severity.ERROR, message=message, path=path, line=line)


def _warning(kind: IssueKind, message: str, path: str) -> ValidationIssue:
    return ValidationIssue(kind=kind, severity=Severity.WARNING, message=message, path=path)


def issue_from_parse_error(error: RuleParseError) -> ValidationIssue:
    return _error(error.kind, error.message, error.path, error.line)


def find_duplicate_ids(rules: Sequence[Rule]) -> list[ValidationIssue]:
    by_id: dict[str, list[str]] = defaultdict(list)
    for rule in rules:
        by_id[rule.id].append(rule.source_path)

    issues: list[ValidationIssue] = []
    for rule_id, paths in by_id.items():
        if len(paths) < 2:
            continue
        for index, path in enumerate(paths):
            siblings = paths[:index] + paths[index + 1 :]
            issues.append(
                _error(
                    IssueKind.DUPLICATE_ID,
                    f"Duplicate rule ID '{rule_id}' also found in: {', '.join(siblings)}",
                    path,
                )
            )
    return issues


def find_dead_links(rule: Rule, project_root: Path) -> list[ValidationIssue]:
    """Report local link targets that do not exist.

    Targets starting with ``/`` resolve against the project root, all
    others against the directory holding the rule file. A target that
    lands outside the project root is a path-traversal error instead.
    """
    root = Path(os.path.normpath(project_root))
    issues: list[ValidationIssue] = []
    for link in iter_local_links(rule.body):
        target = strip_anchor(link.target)
        if not target:
            continue
        if target.startswith("/"):
            candidate = root / target.lstrip("/")
        else:
            candidate = rule.absolute_path.parent / target
        resolved = Path(os.path.normpath(candidate))
        line = rule.body_line + link.line - 1

        if resolved != root and root not in resolved.parents:
            issues.append(
                _error(
                    IssueKind.PATH_TRAVERSAL,
                    f"Link escapes the project directory: {link.target}",
                    rule.source_path,
                    line,
                )
            )
        elif not resolved.exists():
            issues.append(
                _error(IssueKind.DEAD_LINK, f"Dead link found: {link.target}", rule.source_path, line)
            )
    return issues


def find_ghost_rule(rule: Rule, project_files: Sequence[str]) -> Optional[ValidationIssue]:
    if rule.always_apply or not rule.effective_globs:
        return None
    if match_any(project_files, rule.effective_globs):
        return None
    patterns = ", ".join(rule.effective_globs)
    return _warning(IssueKind.GHOST_RULE, f"Glob patterns match no files: {patterns}", rule.source_path)


def build_reference_graph(rules: Sequence[Rule]) -> dict[str, list[str]]:
    """Adjacency of rule id to referenced rule ids, restricted to known ids.

    With duplicate ids the first rule wins; duplicates are reported
    separately.
    """
    bodies: dict[str, str] = {}
    for rule in rules:
        bodies.setdefault(rule.id, rule.body)
    return {
        rule_id: [target for target in find_references(body) if target in bodies]
        for rule_id, body in bodies.items()
    }


def _canonical_cycle(cycle: list[str]) -> tuple[str, ...]:
    nodes = cycle[:-1]
    start = nodes.index(min(nodes))
    rotated = nodes[start:] + nodes[:start]
    return tuple(rotated + [rotated[0]])


def find_cycles(graph: Mapping[str, Sequence[str]]) -> list[tuple[str, ...]]:
    """Every distinct cycle reachable through a back edge, canonically rotated.

    Depth-first traversal with an explicit path stack. Reaching a node that
    is already on the stack closes a cycle, which is recorded and not
    followed further.
    """
    cycles: dict[tuple[str, ...], None] = {}
    finished: set[str] = set()

    for start in sorted(graph):
        if start in finished:
            continue
        path: list[str] = [start]
        on_path: set[str] = {start}
        iterators = [iter(graph.get(start, ()))]
        while iterators:
            neighbor = next(iterators[-1], None)
            if neighbor is None:
                node = path.pop()
                on_path.discard(node)
                finished.add(node)
                iterators.pop()
                continue
            if neighbor in on_path:
                chain = path[path.index(neighbor) :] + [neighbor]
                cycles.setdefault(_canonical_cycle(chain), None)
                continue
            if neighbor in finished:
                continue
            path.append(neighbor)
            on_path.add(neighbor)
            iterators.append(iter(graph.get(neighbor, ())))
    return list(cycles)


def find_circular_references(rules: Sequence[Rule]) -> list[ValidationIssue]:
    paths: dict[str, str] = {}
    for rule in rules:
        paths.setdefault(rule.id, rule.source_path)

    issues: list[ValidationIssue] = []
    for cycle in find_cycles(build_reference_graph(rules)):
        issues.append(
            _error(
                IssueKind.CIRCULAR_REFERENCE,
                f"Circular reference detected: {' -> '.join(cycle)}",
                paths[cycle[0]],
            )
        )
    return issues


def rule_set_tokens(rules: Sequence[Rule]) -> int:
    return sum(
        estimate_tokens(rule.body) + estimate_tokens(json.dumps(rule.frontmatter.as_dict()))
        for rule in rules
    )


def check_token_limits(rules: Sequence[Rule], budgets: Mapping[str, int]) -> list[ValidationIssue]:
    if not budgets:
        return []
    total = rule_set_tokens(rules)
    issues: list[ValidationIssue] = []
    for target, max_tokens in budgets.items():
        if total > max_tokens * TOKEN_PRESSURE_RATIO:
            issues.append(
                _warning(
                    IssueKind.TOKEN_LIMIT,
                    f"Estimated tokens ({total}) approaching the {target} limit ({max_tokens}); "
                    "reduce content or raise max_tokens",
                    "all rules",
                )
            )
    return issues


def analyze_rules(
    rules: Sequence[Rule],
    layout: ProjectLayout,
    budgets: Optional[Mapping[str, int]] = None,
    project_files: Optional[Sequence[str]] = None,
) -> ValidationReport:
    """Run every check and aggregate the findings.

    ``project_files`` lets callers reuse an existing walk of the project
    tree; it is computed lazily only when a rule needs a ghost check.
    """
    report = ValidationReport(rules_analyzed=len(rules))
    report.extend(find_duplicate_ids(rules))
    report.extend(find_circular_references(rules))

    for rule in rules:
        report.extend(find_dead_links(rule, layout.root))
        if rule.always_apply:
            continue
        if project_files is None:
            project_files = iter_project_files(layout.root)
        ghost = find_ghost_rule(rule, project_files)
        if ghost is not None:
            report.warnings.append(ghost)

    report.extend(check_token_limits(rules, budgets or {}))
    logger.debug(
        "analyzed %d rules: %d errors, %d warnings",
        report.rules_analyzed,
        len(report.errors),
        len(report.warnings),
    )
    return report
