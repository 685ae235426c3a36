"""Temp-file-then-rename writes and all-or-nothing write batches."""

from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)

TEMP_FILE_PATTERN = re.compile(r"\.tmp\.\d+\.[0-9a-f]+$")


@dataclass(frozen=True)
class PendingWrite:
    path: Path
    content: str


@dataclass
class TransactionResult:
    success: bool = False
    written: list[Path] = field(default_factory=list)
    errors: list[tuple[Path, OSError]] = field(default_factory=list)


def temp_path_for(target: Path) -> Path:
    return target.with_name(f"{target.name}.tmp.{os.getpid()}.{uuid.uuid4().hex[:8]}")


def _write_temp(target: Path, content: str) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = temp_path_for(target)
    try:
        with open(temp_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
    except Exception:
        _remove_quietly([temp_path])
        raise
    return temp_path


def _remove_quietly(paths: Iterable[Path]) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("could not remove temporary file %s: %s", path, exc)


def atomic_write(target: Path, content: str) -> None:
    """Write ``content`` to ``target`` so readers never see a partial file."""
    temp_path: Path | None = None
    try:
        temp_path = _write_temp(target, content)
        os.replace(temp_path, target)
    except OSError:
        if temp_path is not None:
            _remove_quietly([temp_path])
        raise


def transaction(writes: Sequence[PendingWrite]) -> TransactionResult:
    """Write every file of a batch or none of them.

    All contents go to co-located temp files first. Only when every temp
    file exists are they renamed into place. If any temp write fails, the
    temp files created so far are removed and no destination is touched.
    """
    result = TransactionResult()
    staged: list[tuple[Path, Path]] = []

    for write in writes:
        try:
            staged.append((write.path, _write_temp(write.path, write.content)))
        except OSError as exc:
            result.errors.append((write.path, exc))
            _remove_quietly(temp for _, temp in staged)
            logger.debug("transaction aborted before commit at %s", write.path)
            return result

    for index, (target, temp) in enumerate(staged):
        try:
            os.replace(temp, target)
        except OSError as exc:
            result.errors.append((target, exc))
            _remove_quietly(pending for _, pending in staged[index:])
            return result
        result.written.append(target)

    result.success = True
    return result


def cleanup_stale_temp_files(directories: Iterable[Path]) -> list[Path]:
    """Remove temp files left behind by an interrupted run."""
    cleaned: list[Path] = []
    for directory in directories:
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if entry.is_file() and TEMP_FILE_PATTERN.search(entry.name):
                try:
                    entry.unlink()
                except OSError as exc:
                    logger.warning("could not remove stale temporary file %s: %s", entry, exc)
                    continue
                cleaned.append(entry)
    if cleaned:
        logger.info("removed %d stale temporary file(s) from an interrupted build", len(cleaned))
    return cleaned
