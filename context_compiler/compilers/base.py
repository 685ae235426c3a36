"""Shared pieces of the per-target compilers.

Every generated file ends with a build-metadata footer::

    <!-- ctx build metadata -->
    <!-- timestamp: 2026-01-01T00:00:00+00:00 -->
    <!-- checksum: sha256:<64 hex> -->

The checksum covers the content before the footer with newlines
normalized to ``\\n``, so a generated file can be verified on its own.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from context_compiler.config import TargetConfig
from context_compiler.constants import CONTEXT_DIRNAME, RULES_DIRNAME
from context_compiler.estimator import apply_budget_margin, estimate_tokens
from context_compiler.layout import ProjectLayout
from context_compiler.models import BuildTarget
from context_compiler.rules.models import Rule
from context_compiler.rules.repository import ContextRepository
from context_compiler.selector import SelectionResult
from context_compiler.utils import content_hash, utc_stamp

FOOTER_MARKER = "<!-- ctx build metadata -->"
_FOOTER_RE = re.compile(
    r"\n<!-- ctx build metadata -->\n<!-- timestamp: [^\n]+ -->\n"
    r"<!-- checksum: sha256:[a-f0-9]{64} -->\s*\Z"
)
_CHECKSUM_RE = re.compile(r"<!--\s*checksum:\s*(sha256:[a-f0-9]{64})\s*-->", re.IGNORECASE)


def normalize_newlines(content: str) -> str:
    return content.replace("\r\n", "\n").replace("\r", "\n")


def strip_build_metadata(content: str) -> str:
    return _FOOTER_RE.sub("", normalize_newlines(content))


def has_build_metadata(content: str) -> bool:
    return _FOOTER_RE.search(normalize_newlines(content)) is not None


def extract_checksum(content: str) -> Optional[str]:
    match = _CHECKSUM_RE.search(content)
    return match.group(1).lower() if match else None


def add_build_metadata(content: str, timestamp: str) -> str:
    checksum = content_hash(normalize_newlines(content))
    return (
        f"{content}\n{FOOTER_MARKER}\n"
        f"<!-- timestamp: {timestamp} -->\n"
        f"<!-- checksum: {checksum} -->\n"
    )


def verify_build_metadata(content: str) -> bool:
    embedded = extract_checksum(content)
    if embedded is None or not has_build_metadata(content):
        return False
    return embedded == content_hash(strip_build_metadata(content))


def same_generated_content(left: str, right: str) -> bool:
    """Compare two outputs while ignoring their metadata footers."""
    return strip_build_metadata(left) == strip_build_metadata(right)


@dataclass(frozen=True)
class OutputFile:
    path: str
    content: str
    tokens: int
    sources: tuple[str, ...] = ()


@dataclass
class CompilationResult:
    target: BuildTarget
    outputs: list[OutputFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    selection: Optional[SelectionResult] = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def total_tokens(self) -> int:
        return sum(output.tokens for output in self.outputs)


@dataclass
class CompilerContext:
    repository: ContextRepository
    rules: Sequence[Rule]
    settings: TargetConfig
    timestamp: str = field(default_factory=utc_stamp)
    context_files: Optional[tuple[str, ...]] = None

    @property
    def layout(self) -> ProjectLayout:
        return self.repository.layout

    def rule_source(self, rule: Rule) -> str:
        return self.layout.relative(rule.absolute_path)

    def shared_sources(self) -> list[str]:
        sources = self.repository.global_doc_paths()
        config_doc = self.repository.config_doc_path()
        if config_doc is not None:
            sources.append(config_doc)
        return sources


class ITargetCompiler(ABC):
    target: BuildTarget

    @abstractmethod
    def compile(self, context: CompilerContext) -> CompilationResult:
        """Render every output file of this target without touching disk."""


def meta_rule() -> str:
    return "\n".join(
        [
            "## Context Hygiene",
            "",
            f"This file is generated from the rules in `{CONTEXT_DIRNAME}/{RULES_DIRNAME}/`.",
            "Edit those source rules instead of this file and run `ctx build` to regenerate it.",
            "Run `ctx lint` after editing to catch broken links and duplicate rule ids.",
        ]
    )


def directory_index(rules: Sequence[Rule]) -> str:
    lines = ["## Directory Index", ""]
    if not rules:
        lines.append("No rules are included.")
        return "\n".join(lines) + "\n"

    lines.append(f"Rules live in `{CONTEXT_DIRNAME}/{RULES_DIRNAME}/`:")
    lines.append("")
    grouped: dict[str, list[str]] = defaultdict(list)
    for rule in rules:
        grouped[rule.source_dir].append(rule.id)
    for directory in sorted(grouped):
        label = f"{directory}/" if directory else "(root)"
        ids = ", ".join(sorted(grouped[directory]))
        lines.append(f"- `{label}` ({len(grouped[directory])}): {ids}")
    return "\n".join(lines) + "\n"


def remaining_rule_budget(settings: TargetConfig, fixed_content: Sequence[str]) -> Optional[int]:
    """Tokens left for rules after the fixed sections, or ``None`` when unbudgeted."""
    if settings.max_tokens is None:
        return None
    effective = apply_budget_margin(settings.max_tokens, settings.budget_margin)
    used = sum(estimate_tokens(text) for text in fixed_content if text)
    return max(0, effective - used)
