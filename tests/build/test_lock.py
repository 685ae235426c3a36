"""Tests for the cross-process build lock."""

import json
import os
from pathlib import Path

import pytest

from context_compiler.build.lock import FileBuildLockManager
from context_compiler.errors import BuildLockConflictError

NOW = 1_800_000_000.0


def _manager(tmp_path: Path) -> FileBuildLockManager:
    return FileBuildLockManager(tmp_path / ".build.lock", clock=lambda: NOW)


def _write_lock(path: Path, acquired_at: float, pid: int = 99999) -> None:
    path.write_text(
        json.dumps({"pid": pid, "hostname": "elsewhere", "acquired_at": acquired_at, "target": "claude"}),
        encoding="utf-8",
    )


def test_acquire_creates_lock_file(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    lock = manager.acquire("claude")

    assert lock.pid == os.getpid()
    assert manager.read() == lock


def test_fresh_lock_conflicts(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    _write_lock(manager.lock_path, acquired_at=NOW - 60)

    with pytest.raises(BuildLockConflictError) as excinfo:
        manager.acquire()

    assert excinfo.value.holder is not None
    assert excinfo.value.holder.pid == 99999
    assert "PID 99999" in str(excinfo.value)


def test_stale_lock_is_reclaimed(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    _write_lock(manager.lock_path, acquired_at=NOW - 301)

    lock = manager.acquire()

    assert lock.pid == os.getpid()
    assert manager.read() == lock


def test_unreadable_lock_uses_file_age(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.lock_path.write_text("not json", encoding="utf-8")
    os.utime(manager.lock_path, (NOW - 10, NOW - 10))

    with pytest.raises(BuildLockConflictError):
        manager.acquire()

    os.utime(manager.lock_path, (NOW - 600, NOW - 600))
    assert manager.acquire().pid == os.getpid()


def test_second_acquire_conflicts_with_first(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.acquire()

    with pytest.raises(BuildLockConflictError):
        manager.acquire()


def test_release_only_removes_own_lock(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    lock = manager.acquire()
    _write_lock(manager.lock_path, acquired_at=NOW)

    assert manager.release(lock) is False
    assert manager.lock_path.exists()


def test_hold_releases_on_error(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    with pytest.raises(RuntimeError):
        with manager.hold("claude"):
            assert manager.lock_path.exists()
            raise RuntimeError("boom")

    assert not manager.lock_path.exists()


def test_stale_lock_is_reclaimed_by_only_one_process(tmp_path: Path) -> None:
    first = _manager(tmp_path)
    second = _manager(tmp_path)
    _write_lock(first.lock_path, acquired_at=NOW - 301)
    os.utime(first.lock_path, (NOW - 301, NOW - 301))
    first_locks = []
    real_read = second.read

    def read_then_let_first_reclaim():
        holder = real_read()
        if not first_locks:
            first_locks.append(first.acquire("claude"))
        return holder

    second.read = read_then_let_first_reclaim

    with pytest.raises(BuildLockConflictError):
        second.acquire("agents")

    assert first.read() == first_locks[0]
    assert sorted(path.name for path in tmp_path.iterdir()) == [".build.lock"]
