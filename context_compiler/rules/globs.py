"""Minimatch-style glob matching over forward-slash relative paths.

Pattern table:

=========  =============================================
``**``     any number of path segments (including none)
``*``      any run of characters inside one segment
``?``      exactly one character inside one segment
``[...]``  character class, ``[!...]`` negates
``{a,b}``  alternation, nesting allowed
=========  =============================================

A pattern without ``/`` is matched against the basename only.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Sequence

from wcmatch import glob

from context_compiler.constants import PROJECT_WALK_IGNORED_DIRS

GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.MATCHBASE | glob.FORCEUNIX


def _strip_dot_slash(value: str) -> str:
    return value[2:] if value.startswith("./") else value


def match_glob(path: str, pattern: str) -> bool:
    return glob.globmatch(_strip_dot_slash(path), _strip_dot_slash(pattern), flags=GLOB_FLAGS)


def match_any(paths: Iterable[str], patterns: Sequence[str]) -> bool:
    return any(match_glob(path, pattern) for path in paths for pattern in patterns)


def iter_project_files(
    root: Path, ignored_dirs: Sequence[str] = PROJECT_WALK_IGNORED_DIRS
) -> list[str]:
    files: list[str] = []
    root_real = root.resolve()
    for current, dir_names, file_names in os.walk(str(root_real), topdown=True):
        dir_names[:] = sorted(name for name in dir_names if name not in ignored_dirs)
        base = Path(current)
        for name in file_names:
            files.append((base / name).relative_to(root_real).as_posix())
    return sorted(files)
