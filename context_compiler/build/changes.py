"""Two-phase change detection against the manifest."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Sequence

from context_compiler.build.manifest import Manifest, ManifestEntry
from context_compiler.utils import content_hash, file_hash


@dataclass
class ChangeSet:
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    touched: list[str] = field(default_factory=list)
    entries: dict[str, ManifestEntry] = field(default_factory=dict)

    @property
    def changed(self) -> list[str]:
        return sorted(self.added + self.modified)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    def inputs_digest(self) -> str:
        """Digest over the current hash of every tracked source."""
        lines = [f"{path} {entry.hash}" for path, entry in sorted(self.entries.items())]
        return content_hash("\n".join(lines))


def snapshot_entry(path: Path, outputs: Sequence[str] = ()) -> ManifestEntry:
    stat = os.stat(path)
    return ManifestEntry(
        hash=file_hash(path),
        mtime_ns=stat.st_mtime_ns,
        size=stat.st_size,
        outputs=tuple(outputs),
    )


def detect_changes(root: Path, sources: Sequence[str], manifest: Optional[Manifest]) -> ChangeSet:
    """Classify every tracked source relative to ``manifest``.

    An unchanged modification time is trusted without hashing. A changed
    modification time with an unchanged hash is a touch: the entry's mtime
    is refreshed but the file does not count as changed. Sources missing
    from ``manifest`` are added; manifest entries without a source are
    removed.
    """
    known = manifest.sources if manifest is not None else {}
    result = ChangeSet()

    for source in sorted(set(sources)):
        path = root / source
        previous = known.get(source)
        if previous is None:
            result.added.append(source)
            result.entries[source] = snapshot_entry(path)
            continue

        stat = os.stat(path)
        if stat.st_mtime_ns == previous.mtime_ns:
            result.unchanged.append(source)
            result.entries[source] = previous
            continue

        current_hash = file_hash(path)
        if current_hash == previous.hash:
            result.touched.append(source)
            result.entries[source] = replace(previous, mtime_ns=stat.st_mtime_ns, size=stat.st_size)
        else:
            result.modified.append(source)
            result.entries[source] = ManifestEntry(
                hash=current_hash,
                mtime_ns=stat.st_mtime_ns,
                size=stat.st_size,
                outputs=previous.outputs,
            )

    current = set(sources)
    result.removed = sorted(path for path in known if path not in current)
    return result
