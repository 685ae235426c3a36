"""Integrity checks for generated outputs recorded in the manifest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from context_compiler.build.manifest import Manifest
from context_compiler.compilers.base import extract_checksum, has_build_metadata, verify_build_metadata
from context_compiler.constants import CURSOR_RULE_SUFFIX, CURSOR_RULES_DIR
from context_compiler.layout import ProjectLayout
from context_compiler.models import OutputStatus


@dataclass(frozen=True)
class OutputCheck:
    path: str
    target: str
    status: OutputStatus

    @property
    def ok(self) -> bool:
        return self.status == OutputStatus.OK


def check_output(layout: ProjectLayout, path: str, target: str = "") -> OutputCheck:
    absolute = layout.resolve(path)
    if not absolute.is_file():
        return OutputCheck(path=path, target=target, status=OutputStatus.MISSING)
    content = absolute.read_text(encoding="utf-8", errors="replace")
    if extract_checksum(content) is None:
        return OutputCheck(path=path, target=target, status=OutputStatus.UNSIGNED)
    if not verify_build_metadata(content):
        return OutputCheck(path=path, target=target, status=OutputStatus.MODIFIED)
    return OutputCheck(path=path, target=target, status=OutputStatus.OK)


def verify_outputs(
    layout: ProjectLayout, manifest: Manifest, targets: Optional[Iterable[str]] = None
) -> list[OutputCheck]:
    """Check every recorded output against its embedded checksum."""
    wanted = set(targets) if targets is not None else None
    checks: list[OutputCheck] = []
    for path, record in sorted(manifest.outputs.items()):
        if wanted is not None and record.target not in wanted:
            continue
        checks.append(check_output(layout, path, record.target))
    return checks


def find_stale_cursor_outputs(layout: ProjectLayout, expected: Iterable[str]) -> list[str]:
    """Generated ``.mdc`` files on disk that no current rule produces.

    Only files carrying the build-metadata footer are considered, so
    hand-written cursor rules are never reported.
    """
    directory = layout.resolve(CURSOR_RULES_DIR)
    if not directory.is_dir():
        return []
    keep = set(expected)
    stale: list[str] = []
    for entry in sorted(directory.iterdir()):
        if not entry.is_file() or entry.suffix != CURSOR_RULE_SUFFIX:
            continue
        relative = f"{CURSOR_RULES_DIR}/{entry.name}"
        if relative in keep:
            continue
        if has_build_metadata(entry.read_text(encoding="utf-8", errors="replace")):
            stale.append(relative)
    return stale
