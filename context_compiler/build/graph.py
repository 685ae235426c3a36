"""Source dependency graph used to expand a change set.

Nodes are project-relative source paths. An edge ``dependent -> dependency``
means a change to ``dependency`` invalidates ``dependent``. Every rule
depends on the global documents and on the configuration document; a rule
that references another rule through an ``@import``/``@include`` marker
depends on it.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Iterable, Sequence

from context_compiler.analysis.patterns import find_references
from context_compiler.layout import ProjectLayout
from context_compiler.rules.models import Rule


class DependencyGraph:
    def __init__(self) -> None:
        self._dependents: dict[str, set[str]] = defaultdict(set)

    def add_edge(self, dependent: str, dependency: str) -> None:
        if dependent != dependency:
            self._dependents[dependency].add(dependent)

    def dependents_of(self, node: str) -> set[str]:
        return set(self._dependents.get(node, ()))

    def invalidate(self, changed: Iterable[str]) -> set[str]:
        """Return ``changed`` plus every transitive dependent."""
        seen = set(changed)
        queue = deque(seen)
        while queue:
            node = queue.popleft()
            for dependent in self.dependents_of(node):
                if dependent not in seen:
                    seen.add(dependent)
                    queue.append(dependent)
        return seen

    @classmethod
    def for_project(
        cls, rules: Sequence[Rule], layout: ProjectLayout, shared_sources: Sequence[str]
    ) -> "DependencyGraph":
        graph = cls()
        paths_by_id: dict[str, str] = {}
        for rule in rules:
            paths_by_id.setdefault(rule.id, layout.relative(rule.absolute_path))

        for rule in rules:
            rule_path = layout.relative(rule.absolute_path)
            for shared in shared_sources:
                graph.add_edge(rule_path, shared)
            for reference in find_references(rule.body):
                target = paths_by_id.get(reference)
                if target is not None:
                    graph.add_edge(rule_path, target)
        return graph
