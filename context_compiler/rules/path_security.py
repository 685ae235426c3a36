"""Reject rule paths that could escape the project directory."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath, PureWindowsPath

from context_compiler.errors import PathSecurityError

_NULL_BYTE_RE = re.compile(r"\x00|%00", re.IGNORECASE)
_ENCODED_SEPARATOR_RE = re.compile(r"%2f|%252f", re.IGNORECASE)
_WINDOWS_ABSOLUTE_RE = re.compile(r"^[a-zA-Z]:[\\/]")


def _is_absolute(path: str) -> bool:
    if _WINDOWS_ABSOLUTE_RE.match(path) or path.startswith("\\\\"):
        return True
    return PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute()


def _has_parent_reference(path: str) -> bool:
    parts = re.split(r"[\\/]", path)
    return any(part == ".." for part in parts)


def validate_relative_path(path: str, project_root: Path) -> None:
    if _NULL_BYTE_RE.search(path):
        raise PathSecurityError(path, "Path contains a null byte")
    if _ENCODED_SEPARATOR_RE.search(path):
        raise PathSecurityError(path, "Path contains URL-encoded separators")
    if _is_absolute(path):
        raise PathSecurityError(path, "Absolute paths are not allowed")
    if _has_parent_reference(path):
        raise PathSecurityError(path, "Path traversal detected")

    root = project_root.resolve()
    resolved = (root / path).resolve()
    if resolved != root and root not in resolved.parents:
        raise PathSecurityError(path, "Path escapes project directory")


def validate_symlink(path: Path, project_root: Path) -> None:
    if not path.is_symlink():
        return
    target = path.resolve()
    root = project_root.resolve()
    if root not in target.parents:
        raise PathSecurityError(str(path), f"Symlink target is outside project ({target})")


def is_path_safe(path: str, project_root: Path) -> bool:
    try:
        validate_relative_path(path, project_root)
    except PathSecurityError:
        return False
    return True
