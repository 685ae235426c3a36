import copy
import sys
from pathlib import Path
from typing import Any, Optional

from click.testing import CliRunner
import pytest
import yaml


def _ensure_repo_on_path() -> None:
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_ensure_repo_on_path()

from context_compiler.build.lock import IBuildLockManager  # noqa: E402
from context_compiler.build.manifest import IManifestStore, Manifest  # noqa: E402
from context_compiler.build.orchestrator import BuildOrchestrator  # noqa: E402
from context_compiler.config import DEFAULT_TARGETS, ContextConfig  # noqa: E402
from context_compiler.errors import BuildLockConflictError  # noqa: E402
from context_compiler.layout import ProjectLayout  # noqa: E402
from context_compiler.models import BuildLock, BuildTarget  # noqa: E402
from context_compiler.rules.models import Rule, RuleFrontmatter  # noqa: E402
from context_compiler.rules.parser import infer_globs  # noqa: E402

FIXED_TIMESTAMP = "2026-01-01T00:00:00+00:00"


class InMemoryManifestStore(IManifestStore):
    def __init__(self, manifest: Optional[Manifest] = None) -> None:
        self.manifest = manifest
        self.saves = 0

    def load(self) -> Optional[Manifest]:
        return copy.deepcopy(self.manifest)

    def save(self, manifest: Manifest) -> None:
        self.manifest = copy.deepcopy(manifest)
        self.saves += 1


class FakeLockManager(IBuildLockManager):
    def __init__(self, held_by: Optional[BuildLock] = None) -> None:
        self.held_by = held_by
        self.acquired = 0
        self.released = 0

    def acquire(self, target: str = "") -> BuildLock:
        if self.held_by is not None:
            raise BuildLockConflictError(Path(".context/.build.lock"), self.held_by)
        self.acquired += 1
        return BuildLock(pid=1, hostname="test-host", acquired_at=0.0, target=target)

    def release(self, lock: BuildLock) -> bool:
        self.released += 1
        return True


def _config_for(*targets: BuildTarget) -> ContextConfig:
    return ContextConfig(targets={target: DEFAULT_TARGETS[target] for target in targets}, source="file")


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(Path, "home", lambda: tmp_path)


@pytest.fixture
def project(tmp_path: Path) -> ProjectLayout:
    root = tmp_path / "project"
    (root / ".context" / "rules").mkdir(parents=True)
    (root / ".context" / "project.md").write_text(
        "# Demo\n\nA small demo service.\n", encoding="utf-8"
    )
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("print('hello')\n", encoding="utf-8")
    return ProjectLayout.discover(root)


@pytest.fixture
def write_rule(project: ProjectLayout):
    def _write(
        source_path: str,
        rule_id: Optional[str] = None,
        body: str = "Follow the project conventions.",
        **frontmatter: Any,
    ) -> Path:
        payload = {"id": rule_id or Path(source_path).stem, **frontmatter}
        path = project.rules_dir / source_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            "---\n" + yaml.safe_dump(payload, sort_keys=False) + "---\n\n" + body + "\n",
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def make_rule():
    def _make(
        rule_id: str,
        body: str = "Rule body.",
        priority: int = 50,
        tags: tuple[str, ...] = (),
        always_apply: bool = False,
        globs: tuple[str, ...] = (),
        source_path: Optional[str] = None,
    ) -> Rule:
        source = source_path or f"{rule_id}.md"
        return Rule(
            frontmatter=RuleFrontmatter(
                id=rule_id,
                priority=priority,
                tags=tuple(tags),
                always_apply=always_apply,
                globs=tuple(globs),
            ),
            body=body,
            source_path=source,
            absolute_path=Path("/virtual/.context/rules") / source,
            effective_globs=tuple(globs) or infer_globs(source),
        )

    return _make


@pytest.fixture
def config_for():
    return _config_for


@pytest.fixture
def manifest_store() -> InMemoryManifestStore:
    return InMemoryManifestStore()


@pytest.fixture
def lock_manager() -> FakeLockManager:
    return FakeLockManager()


@pytest.fixture
def busy_lock_manager() -> FakeLockManager:
    return FakeLockManager(held_by=BuildLock(pid=4242, hostname="other-host", acquired_at=0.0))


@pytest.fixture
def orchestrator_factory(project: ProjectLayout, manifest_store, lock_manager):
    def _create(
        config: Optional[ContextConfig] = None,
        store: Optional[IManifestStore] = None,
        locks: Optional[IBuildLockManager] = None,
    ) -> BuildOrchestrator:
        return BuildOrchestrator(
            layout=project,
            config=config or _config_for(BuildTarget.CLAUDE),
            manifest_store=store or manifest_store,
            lock_manager=locks or lock_manager,
            timestamp_factory=lambda: FIXED_TIMESTAMP,
        )

    return _create


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()
