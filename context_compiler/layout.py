from dataclasses import dataclass
from pathlib import Path

from context_compiler.constants import (
    ARCHITECTURE_DOC_FILENAME,
    CONFIG_FILENAME,
    CONTEXT_DIRNAME,
    LOCK_FILENAME,
    MANIFEST_FILENAME,
    PROJECT_DOC_FILENAME,
    RULES_DIRNAME,
)
from context_compiler.utils import relative_posix


@dataclass(frozen=True)
class ProjectLayout:
    root: Path

    @classmethod
    def discover(cls, root: Path) -> "ProjectLayout":
        return cls(root=root.expanduser().resolve())

    @property
    def context_dir(self) -> Path:
        return self.root / CONTEXT_DIRNAME

    @property
    def rules_dir(self) -> Path:
        return self.context_dir / RULES_DIRNAME

    @property
    def config_path(self) -> Path:
        return self.context_dir / CONFIG_FILENAME

    @property
    def project_doc_path(self) -> Path:
        return self.context_dir / PROJECT_DOC_FILENAME

    @property
    def architecture_doc_path(self) -> Path:
        return self.context_dir / ARCHITECTURE_DOC_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.context_dir / MANIFEST_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.context_dir / LOCK_FILENAME

    def global_doc_paths(self) -> list[Path]:
        return [self.project_doc_path, self.architecture_doc_path]

    def relative(self, path: Path) -> str:
        return relative_posix(path, self.root)

    def resolve(self, relative_path: str) -> Path:
        return self.root / relative_path
