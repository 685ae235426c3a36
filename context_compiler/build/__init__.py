from context_compiler.build.atomic import PendingWrite, TransactionResult, atomic_write, transaction
from context_compiler.build.changes import ChangeSet, detect_changes
from context_compiler.build.lock import FileBuildLockManager, IBuildLockManager
from context_compiler.build.manifest import (
    FileManifestStore,
    IManifestStore,
    Manifest,
    ManifestEntry,
    OutputRecord,
)
from context_compiler.build.orchestrator import (
    BuildOptions,
    BuildOrchestrator,
    BuildResult,
    BuildStats,
)
from context_compiler.build.verify import OutputCheck, verify_outputs
from context_compiler.config import ContextConfig
from context_compiler.layout import ProjectLayout


def create_orchestrator(layout: ProjectLayout, config: ContextConfig) -> BuildOrchestrator:
    return BuildOrchestrator(
        layout=layout,
        config=config,
        manifest_store=FileManifestStore(layout.manifest_path),
        lock_manager=FileBuildLockManager(layout.lock_path),
    )


__all__ = [
    "BuildOptions",
    "BuildOrchestrator",
    "BuildResult",
    "BuildStats",
    "ChangeSet",
    "FileBuildLockManager",
    "FileManifestStore",
    "IBuildLockManager",
    "IManifestStore",
    "Manifest",
    "ManifestEntry",
    "OutputCheck",
    "OutputRecord",
    "PendingWrite",
    "TransactionResult",
    "atomic_write",
    "create_orchestrator",
    "detect_changes",
    "transaction",
    "verify_outputs",
]
