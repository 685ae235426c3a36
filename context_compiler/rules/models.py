"""Rule data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

from context_compiler.constants import DEFAULT_PRIORITY


@dataclass(frozen=True)
class RuleFrontmatter:
    id: str
    description: str | None = None
    domain: str | None = None
    priority: int = DEFAULT_PRIORITY
    tags: tuple[str, ...] = ()
    always_apply: bool = False
    globs: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id}
        if self.description is not None:
            payload["description"] = self.description
        if self.domain is not None:
            payload["domain"] = self.domain
        if self.globs:
            payload["globs"] = list(self.globs)
        payload["priority"] = self.priority
        payload["tags"] = list(self.tags)
        payload["always_apply"] = self.always_apply
        return payload


@dataclass(frozen=True)
class Rule:
    """One parsed rule document.

    ``source_path`` is relative to the rule root (``.context/rules``) and
    always uses forward slashes. ``absolute_path`` points at the file on
    disk. ``body_line`` is the 1-based file line on which ``body`` starts.
    """

    frontmatter: RuleFrontmatter
    body: str
    source_path: str
    absolute_path: Path
    effective_globs: tuple[str, ...] = ()
    inferred_globs: tuple[str, ...] = field(default=(), compare=False)
    body_line: int = 1

    @property
    def id(self) -> str:
        return self.frontmatter.id

    @property
    def priority(self) -> int:
        return self.frontmatter.priority

    @property
    def tags(self) -> tuple[str, ...]:
        return self.frontmatter.tags

    @property
    def always_apply(self) -> bool:
        return self.frontmatter.always_apply

    @property
    def description(self) -> str | None:
        return self.frontmatter.description

    @property
    def source_dir(self) -> str:
        parent = PurePosixPath(self.source_path).parent.as_posix()
        return "" if parent == "." else parent
