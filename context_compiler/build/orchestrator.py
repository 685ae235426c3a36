"""Incremental, transactional build of every requested target.

One invocation walks ``acquire lock -> load manifest -> detect changes ->
compile -> write transaction -> persist manifest -> release lock``. The
manifest store and the lock manager are injected so the pipeline runs
against in-memory fakes as well as the real files under ``.context/``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from context_compiler.analysis.validator import ValidationReport, analyze_rules, issue_from_parse_error
from context_compiler.build.atomic import PendingWrite, cleanup_stale_temp_files, transaction
from context_compiler.build.changes import ChangeSet, detect_changes
from context_compiler.build.graph import DependencyGraph
from context_compiler.build.lock import IBuildLockManager
from context_compiler.build.manifest import IManifestStore, Manifest, ManifestEntry, OutputRecord
from context_compiler.build.verify import find_stale_cursor_outputs, verify_outputs
from context_compiler.compilers import CompilationResult, CompilerContext, ITargetCompiler, default_compilers
from context_compiler.compilers.base import same_generated_content
from context_compiler.config import DEFAULT_TARGETS, ContextConfig
from context_compiler.constants import CURSOR_RULES_DIR
from context_compiler.errors import BuildIOError, BuildLockConflictError, ContextFileError
from context_compiler.layout import ProjectLayout
from context_compiler.models import (
    BuildOutcome,
    BuildPhase,
    BuildTarget,
    ExitCode,
    FailureKind,
    ValidationIssue,
)
from context_compiler.rules.models import Rule
from context_compiler.rules.repository import ContextRepository
from context_compiler.utils import utc_stamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOptions:
    targets: tuple[BuildTarget, ...] = ()
    force: bool = False
    check: bool = False
    skip_validation: bool = False
    context_files: Optional[tuple[str, ...]] = None


@dataclass
class BuildStats:
    targets: list[str] = field(default_factory=list)
    rules_processed: int = 0
    rules_changed: int = 0
    files_written: int = 0
    files_removed: int = 0
    total_tokens: int = 0
    incremental: bool = False
    skipped: bool = False
    duration: float = 0.0


@dataclass
class BuildResult:
    success: bool = False
    outcome: Optional[BuildOutcome] = None
    failure: Optional[FailureKind] = None
    phase: Optional[BuildPhase] = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)
    stats: BuildStats = field(default_factory=BuildStats)
    compilations: dict[BuildTarget, CompilationResult] = field(default_factory=dict)
    written: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> ExitCode:
        if self.success:
            return ExitCode.SUCCESS
        if self.failure == FailureKind.OPERATIONAL:
            return ExitCode.RUNTIME_ERROR
        return ExitCode.FAILURE

    def fail(self, kind: FailureKind, *messages: str) -> None:
        self.success = False
        if self.failure is None:
            self.failure = kind
        self.errors.extend(messages)


class BuildOrchestrator:
    def __init__(
        self,
        layout: ProjectLayout,
        config: ContextConfig,
        manifest_store: IManifestStore,
        lock_manager: IBuildLockManager,
        compilers: Optional[Mapping[BuildTarget, ITargetCompiler]] = None,
        timestamp_factory: Callable[[], str] = utc_stamp,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.layout = layout
        self.config = config
        self.repository = ContextRepository(layout)
        self.manifest_store = manifest_store
        self.lock_manager = lock_manager
        self.compilers = dict(compilers) if compilers is not None else default_compilers()
        self._timestamp_factory = timestamp_factory
        self._clock = clock

    def default_targets(self) -> list[BuildTarget]:
        return self.config.configured_targets() or [BuildTarget.CLAUDE]

    def build(self, options: BuildOptions) -> BuildResult:
        started = self._clock()
        targets = list(options.targets) or self.default_targets()
        result = BuildResult(stats=BuildStats(targets=[target.value for target in targets]))

        try:
            result.phase = BuildPhase.ACQUIRE_LOCK
            with self.lock_manager.hold(",".join(result.stats.targets)):
                self._run(options, targets, result)
                result.phase = BuildPhase.RELEASE_LOCK
        except BuildLockConflictError as exc:
            result.fail(FailureKind.OPERATIONAL, str(exc))
            result.outcome = BuildOutcome.ROLLED_BACK
        except ContextFileError as exc:
            result.fail(FailureKind.OPERATIONAL, str(exc))
            result.outcome = result.outcome or BuildOutcome.ROLLED_BACK
        except OSError as exc:
            path = Path(exc.filename) if exc.filename else self.layout.root
            result.fail(FailureKind.OPERATIONAL, str(BuildIOError(path, exc)))
            result.outcome = result.outcome or BuildOutcome.ROLLED_BACK

        result.stats.duration = self._clock() - started
        return result

    def _run(self, options: BuildOptions, targets: Sequence[BuildTarget], result: BuildResult) -> None:
        cleanup_stale_temp_files(
            [self.layout.context_dir, self.layout.root, self.layout.resolve(CURSOR_RULES_DIR)]
        )

        rules, parse_errors = self.repository.load_rules()
        result.stats.rules_processed = len(rules)
        if parse_errors:
            result.issues.extend(issue_from_parse_error(error) for error in parse_errors)
            result.fail(FailureKind.VALIDATION, *[f"Parse error: {error}" for error in parse_errors])
            result.outcome = BuildOutcome.ROLLED_BACK
            return

        if not options.skip_validation:
            report = analyze_rules(rules, self.layout, self.config.budgets())
            if not self._apply_report(report, result):
                result.outcome = BuildOutcome.ROLLED_BACK
                return

        result.phase = BuildPhase.LOAD_MANIFEST
        manifest = None if options.force else self.manifest_store.load()
        result.stats.incremental = manifest is not None

        result.phase = BuildPhase.DETECT_CHANGES
        changes = detect_changes(self.layout.root, self.repository.tracked_sources(), manifest)
        result.stats.rules_changed = self._count_invalidated_rules(rules, changes, manifest)

        digest = changes.inputs_digest()
        compile_targets = list(targets)
        if manifest is not None and not options.check:
            compile_targets = self._targets_needing_rebuild(manifest, targets, digest)
            if not compile_targets:
                self._finish_skip(manifest, changes, targets, result)
                return
            logger.info("rebuilding %s", ", ".join(target.value for target in compile_targets))

        result.phase = BuildPhase.COMPILE
        timestamp = self._timestamp_factory()
        for target in compile_targets:
            result.compilations[target] = self._compile(target, rules, options, timestamp)
            compilation = result.compilations[target]
            result.errors.extend(f"[{target.value}] {error}" for error in compilation.errors)
            result.warnings.extend(f"[{target.value}] {warning}" for warning in compilation.warnings)
            result.stats.total_tokens += compilation.total_tokens

        compiled = {target: item for target, item in result.compilations.items() if item.success}
        if options.check:
            self._check_against_disk(compiled, result)
            return

        result.phase = BuildPhase.WRITE_TRANSACTION
        pending = self._pending_writes(compiled)
        if pending:
            tx = transaction(pending)
            if not tx.success:
                messages = [str(BuildIOError(path, error)) for path, error in tx.errors]
                result.fail(FailureKind.OPERATIONAL, *messages)
                result.outcome = BuildOutcome.ROLLED_BACK
                return
            result.written = [self.layout.relative(path) for path in tx.written]
            result.stats.files_written = len(tx.written)
        result.outcome = BuildOutcome.COMMITTED

        produced = {output.path for item in compiled.values() for output in item.outputs}
        stale = self._stale_outputs(manifest, changes, compiled, produced)
        result.removed = self._remove_outputs(stale)
        result.stats.files_removed = len(result.removed)

        result.phase = BuildPhase.PERSIST_MANIFEST
        failed = [target for target in result.compilations if target not in compiled]
        updated = self._next_manifest(
            manifest, changes, compiled, failed, set(result.removed), timestamp, digest
        )
        if manifest is None or result.written or result.removed or self._differs(manifest, updated):
            self.manifest_store.save(updated)

        if failed:
            result.fail(FailureKind.BUILD)
        else:
            result.success = True
        logger.debug(
            "build committed: %d written, %d removed", result.stats.files_written, result.stats.files_removed
        )

    def _apply_report(self, report: ValidationReport, result: BuildResult) -> bool:
        result.issues.extend(report.issues)
        result.warnings.extend(str(issue) for issue in report.warnings)
        if report.valid:
            return True
        result.fail(FailureKind.VALIDATION, *[str(issue) for issue in report.errors])
        return False

    def _count_invalidated_rules(
        self, rules: Sequence[Rule], changes: ChangeSet, manifest: Optional[Manifest]
    ) -> int:
        if manifest is None:
            return len(rules)
        shared = self.repository.global_doc_paths()
        config_doc = self.repository.config_doc_path()
        if config_doc is not None:
            shared.append(config_doc)
        graph = DependencyGraph.for_project(rules, self.layout, shared)
        invalidated = graph.invalidate(changes.changed + changes.removed)
        rule_paths = {self.layout.relative(rule.absolute_path) for rule in rules}
        return len(invalidated & rule_paths)

    def _targets_needing_rebuild(
        self, manifest: Manifest, targets: Sequence[BuildTarget], digest: str
    ) -> list[BuildTarget]:
        """Targets whose recorded outputs do not reflect the current sources."""
        needed: list[BuildTarget] = []
        for target in targets:
            if not manifest.has_target(target.value) or manifest.inputs.get(target.value) != digest:
                needed.append(target)
                continue
            checks = verify_outputs(self.layout, manifest, [target.value])
            if any(not check.ok for check in checks):
                needed.append(target)
        return needed

    def _finish_skip(
        self,
        manifest: Manifest,
        changes: ChangeSet,
        targets: Sequence[BuildTarget],
        result: BuildResult,
    ) -> None:
        result.stats.skipped = True
        result.outcome = BuildOutcome.COMMITTED
        if BuildTarget.CURSOR in targets:
            expected = manifest.outputs_for_target(BuildTarget.CURSOR.value)
            result.removed = self._remove_outputs(find_stale_cursor_outputs(self.layout, expected))
            result.stats.files_removed = len(result.removed)
        if changes.touched or changes.has_changes:
            result.phase = BuildPhase.PERSIST_MANIFEST
            manifest.sources = dict(changes.entries)
            self.manifest_store.save(manifest)
        result.success = True
        logger.info("no changes detected, skipping compilation")

    def _compile(
        self,
        target: BuildTarget,
        rules: Sequence[Rule],
        options: BuildOptions,
        timestamp: str,
    ) -> CompilationResult:
        compiler = self.compilers.get(target)
        if compiler is None:
            return CompilationResult(target=target, errors=[f"No compiler registered for {target.value}"])
        settings = self.config.target(target) or DEFAULT_TARGETS[target]
        context = CompilerContext(
            repository=self.repository,
            rules=rules,
            settings=settings,
            timestamp=timestamp,
            context_files=options.context_files,
        )
        logger.debug("compiling %s", target.value)
        return compiler.compile(context)

    def _read_existing(self, path: str) -> Optional[str]:
        absolute = self.layout.resolve(path)
        if not absolute.is_file():
            return None
        return absolute.read_text(encoding="utf-8", errors="replace")

    def _check_against_disk(
        self, compiled: Mapping[BuildTarget, CompilationResult], result: BuildResult
    ) -> None:
        for compilation in compiled.values():
            for output in compilation.outputs:
                existing = self._read_existing(output.path)
                if existing is None:
                    result.errors.append(f"[check] Missing output: {output.path} (run `ctx build`)")
                elif not same_generated_content(existing, output.content):
                    result.errors.append(f"[check] Output out of date: {output.path} (run `ctx build`)")

        cursor = compiled.get(BuildTarget.CURSOR)
        if cursor is not None:
            expected = [output.path for output in cursor.outputs]
            for path in find_stale_cursor_outputs(self.layout, expected):
                result.errors.append(f"[check] Stale generated output: {path} (run `ctx build`)")

        if result.errors:
            result.fail(FailureKind.BUILD)
        else:
            result.success = True

    def _pending_writes(self, compiled: Mapping[BuildTarget, CompilationResult]) -> list[PendingWrite]:
        pending: list[PendingWrite] = []
        for compilation in compiled.values():
            for output in compilation.outputs:
                existing = self._read_existing(output.path)
                if existing is not None and same_generated_content(existing, output.content):
                    continue
                pending.append(PendingWrite(path=self.layout.resolve(output.path), content=output.content))
        return pending

    def _stale_outputs(
        self,
        manifest: Optional[Manifest],
        changes: ChangeSet,
        compiled: Mapping[BuildTarget, CompilationResult],
        produced: set[str],
    ) -> list[str]:
        stale: set[str] = set()
        compiled_names = {target.value for target in compiled}
        if manifest is not None:
            removed = set(changes.removed)
            shared = set(self.repository.global_doc_paths())
            for path, record in manifest.outputs.items():
                if path in produced:
                    continue
                if record.target in compiled_names:
                    stale.add(path)
                    continue
                rule_sources = set(record.sources) - shared - {self.repository.config_doc_path()}
                if rule_sources and rule_sources <= removed:
                    stale.add(path)
        if BuildTarget.CURSOR in compiled:
            stale.update(find_stale_cursor_outputs(self.layout, produced))
        return sorted(stale)

    def _remove_outputs(self, paths: Sequence[str]) -> list[str]:
        removed: list[str] = []
        for path in paths:
            absolute = self.layout.resolve(path)
            try:
                absolute.unlink()
            except FileNotFoundError:
                pass
            removed.append(path)
            logger.info("removed stale output %s", path)
        return removed

    def _next_manifest(
        self,
        previous: Optional[Manifest],
        changes: ChangeSet,
        compiled: Mapping[BuildTarget, CompilationResult],
        failed: Sequence[BuildTarget],
        removed: set[str],
        timestamp: str,
        digest: str,
    ) -> Manifest:
        dropped = {target.value for target in failed} | {target.value for target in compiled}
        outputs: dict[str, OutputRecord] = {}
        targets: set[str] = set()
        inputs: dict[str, str] = {}
        if previous is not None:
            outputs = {
                path: record
                for path, record in previous.outputs.items()
                if record.target not in dropped and path not in removed
            }
            targets = set(previous.targets) - {target.value for target in failed}
            inputs = {target: value for target, value in previous.inputs.items() if target not in dropped}

        for target, compilation in compiled.items():
            targets.add(target.value)
            inputs[target.value] = digest
            for output in compilation.outputs:
                outputs[output.path] = OutputRecord(target=target.value, sources=output.sources)

        contributions: dict[str, list[str]] = {}
        for path, record in outputs.items():
            for source in record.sources:
                contributions.setdefault(source, []).append(path)

        sources = {
            source: ManifestEntry(
                hash=entry.hash,
                mtime_ns=entry.mtime_ns,
                size=entry.size,
                outputs=tuple(sorted(contributions.get(source, []))),
            )
            for source, entry in changes.entries.items()
        }
        return Manifest(
            last_build_time=timestamp,
            targets=sorted(targets),
            sources=sources,
            outputs=outputs,
            inputs=inputs,
        )

    @staticmethod
    def _differs(previous: Manifest, updated: Manifest) -> bool:
        left = previous.as_dict()
        right = updated.as_dict()
        left.pop("last_build_time", None)
        right.pop("last_build_time", None)
        return left != right
