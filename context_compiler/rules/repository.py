"""Read access to the tracked source documents of a project."""

from __future__ import annotations

from pathlib import Path

from context_compiler.errors import RuleParseError
from context_compiler.layout import ProjectLayout
from context_compiler.rules.models import Rule
from context_compiler.rules.parser import discover_rule_files, parse_all_rules


class ContextRepository:
    def __init__(self, layout: ProjectLayout) -> None:
        self._layout = layout

    @property
    def layout(self) -> ProjectLayout:
        return self._layout

    @property
    def rules_dir(self) -> Path:
        return self._layout.rules_dir

    def load_rules(self) -> tuple[list[Rule], list[RuleParseError]]:
        return parse_all_rules(self._layout)

    def rule_source_paths(self) -> list[str]:
        return [
            self._layout.relative(self.rules_dir / name)
            for name in discover_rule_files(self.rules_dir)
        ]

    def global_doc_paths(self) -> list[str]:
        return [
            self._layout.relative(path)
            for path in self._layout.global_doc_paths()
            if path.is_file()
        ]

    def config_doc_path(self) -> str | None:
        if self._layout.config_path.is_file():
            return self._layout.relative(self._layout.config_path)
        return None

    def tracked_sources(self) -> list[str]:
        sources = self.rule_source_paths() + self.global_doc_paths()
        config_doc = self.config_doc_path()
        if config_doc is not None:
            sources.append(config_doc)
        return sorted(sources)

    def read_project_doc(self) -> str | None:
        return self._read_optional(self._layout.project_doc_path)

    def read_architecture_doc(self) -> str | None:
        return self._read_optional(self._layout.architecture_doc_path)

    @staticmethod
    def _read_optional(path: Path) -> str | None:
        if not path.is_file():
            return None
        content = path.read_text(encoding="utf-8").strip()
        return content or None
