"""Persisted record of tracked sources and the outputs they produced.

Stored at ``.context/.build-manifest.json``::

    {
      "version": "1.0",
      "last_build_time": "2026-01-01T00:00:00+00:00",
      "targets": ["claude"],
      "sources": {
        ".context/rules/api.md": {
          "hash": "sha256:...", "mtime_ns": 1, "size": 10, "outputs": ["CLAUDE.md"]
        }
      },
      "outputs": {"CLAUDE.md": {"target": "claude", "sources": [".context/rules/api.md"]}},
      "inputs": {"claude": "sha256:..."}
    }

``inputs`` maps each target to the digest of the sources it was last
compiled from. An unreadable file or a different ``version`` is treated as
no manifest at all, which makes the next build a full rebuild.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from context_compiler.build.atomic import atomic_write
from context_compiler.constants import MANIFEST_VERSION
from context_compiler.utils import dump_json, read_json_safe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestEntry:
    hash: str
    mtime_ns: int
    size: int
    outputs: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "mtime_ns": self.mtime_ns,
            "size": self.size,
            "outputs": list(self.outputs),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ManifestEntry":
        return cls(
            hash=str(payload["hash"]),
            mtime_ns=int(payload["mtime_ns"]),
            size=int(payload.get("size", 0)),
            outputs=tuple(str(item) for item in payload.get("outputs", [])),
        )


@dataclass(frozen=True)
class OutputRecord:
    target: str
    sources: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {"target": self.target, "sources": list(self.sources)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "OutputRecord":
        return cls(
            target=str(payload["target"]),
            sources=tuple(str(item) for item in payload.get("sources", [])),
        )


@dataclass
class Manifest:
    version: str = MANIFEST_VERSION
    last_build_time: str = ""
    targets: list[str] = field(default_factory=list)
    sources: dict[str, ManifestEntry] = field(default_factory=dict)
    outputs: dict[str, OutputRecord] = field(default_factory=dict)
    inputs: dict[str, str] = field(default_factory=dict)

    def outputs_for_target(self, target: str) -> list[str]:
        return sorted(path for path, record in self.outputs.items() if record.target == target)

    def has_target(self, target: str) -> bool:
        return target in self.targets

    def as_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "last_build_time": self.last_build_time,
            "targets": sorted(self.targets),
            "sources": {path: entry.as_dict() for path, entry in sorted(self.sources.items())},
            "outputs": {path: record.as_dict() for path, record in sorted(self.outputs.items())},
            "inputs": dict(sorted(self.inputs.items())),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Manifest":
        return cls(
            version=str(payload["version"]),
            last_build_time=str(payload.get("last_build_time", "")),
            targets=[str(item) for item in payload.get("targets", [])],
            sources={
                str(path): ManifestEntry.from_dict(entry)
                for path, entry in payload.get("sources", {}).items()
            },
            outputs={
                str(path): OutputRecord.from_dict(record)
                for path, record in payload.get("outputs", {}).items()
            },
            inputs={str(target): str(digest) for target, digest in payload.get("inputs", {}).items()},
        )


class IManifestStore(ABC):
    @abstractmethod
    def load(self) -> Optional[Manifest]:
        raise NotImplementedError

    @abstractmethod
    def save(self, manifest: Manifest) -> None:
        raise NotImplementedError


class FileManifestStore(IManifestStore):
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Optional[Manifest]:
        payload, error = read_json_safe(self.path)
        if error is not None:
            logger.warning("build manifest is unreadable, doing a full rebuild: %s", error)
            return None
        if payload is None:
            return None
        if not isinstance(payload, dict) or payload.get("version") != MANIFEST_VERSION:
            logger.warning("build manifest version is not %s, doing a full rebuild", MANIFEST_VERSION)
            return None
        try:
            return Manifest.from_dict(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("build manifest is malformed, doing a full rebuild: %s", exc)
            return None

    def save(self, manifest: Manifest) -> None:
        atomic_write(self.path, dump_json(manifest.as_dict()))
