"""Cooperative cross-process build lock.

The lock is a small JSON file created with ``O_EXCL``. A lock younger than
the staleness window blocks a second build outright; an older one is
treated as abandoned by a crashed run and reclaimed. Reclaiming first
renames the stale file aside and checks that the moved file is the one that
was judged stale, so two processes cannot both reclaim it. There is no
waiting and no heartbeat.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from context_compiler.constants import STALE_LOCK_SECONDS
from context_compiler.errors import BuildIOError, BuildLockConflictError
from context_compiler.models import BuildLock

logger = logging.getLogger(__name__)


class IBuildLockManager(ABC):
    @abstractmethod
    def acquire(self, target: str = "") -> BuildLock:
        raise NotImplementedError

    @abstractmethod
    def release(self, lock: BuildLock) -> bool:
        raise NotImplementedError

    @contextmanager
    def hold(self, target: str = "") -> Iterator[BuildLock]:
        lock = self.acquire(target)
        try:
            yield lock
        finally:
            self.release(lock)


class FileBuildLockManager(IBuildLockManager):
    def __init__(
        self,
        lock_path: Path,
        stale_after: float = STALE_LOCK_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.lock_path = lock_path
        self.stale_after = stale_after
        self._clock = clock

    def read(self) -> Optional[BuildLock]:
        try:
            raw = self.lock_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return BuildLock.from_dict(json.loads(raw))
        except ValueError:
            return None

    def _age_of_existing(self, holder: Optional[BuildLock]) -> Optional[float]:
        now = self._clock()
        if holder is not None:
            return holder.age(now)
        try:
            return now - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _stat(self) -> Optional[os.stat_result]:
        try:
            return self.lock_path.stat()
        except FileNotFoundError:
            return None

    @staticmethod
    def _identity(stat: os.stat_result) -> tuple[int, int, int]:
        return stat.st_ino, stat.st_mtime_ns, stat.st_size

    def _reclaim(self, observed: os.stat_result) -> bool:
        """Remove the stale lock file unless it changed hands since ``observed``."""
        aside = self.lock_path.with_name(
            f"{self.lock_path.name}.stale.{os.getpid()}.{uuid.uuid4().hex[:8]}"
        )
        try:
            os.rename(self.lock_path, aside)
        except FileNotFoundError:
            return True
        if self._identity(aside.stat()) == self._identity(observed):
            aside.unlink()
            return True

        logger.debug("build lock changed hands while reclaiming, restoring it")
        try:
            os.link(aside, self.lock_path)
        except FileExistsError:
            pass
        aside.unlink()
        return False

    def _try_create(self, lock: BuildLock) -> bool:
        try:
            fd = os.open(str(self.lock_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(lock.as_dict(), handle, indent=2)
        return True

    def acquire(self, target: str = "") -> BuildLock:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock = BuildLock.for_current_process(os.getpid(), self._clock(), target)
            if self._try_create(lock):
                return lock

            observed = self._stat()
            holder = self.read()
            age = self._age_of_existing(holder)
            if age is not None and age <= self.stale_after:
                raise BuildLockConflictError(self.lock_path, holder)

            if age is not None:
                description = holder.describe() if holder is not None else "an unreadable lock"
                logger.warning(
                    "reclaiming stale build lock held by %s (%.0fs old): %s",
                    description,
                    age,
                    self.lock_path,
                )
                if observed is not None and not self._reclaim(observed):
                    raise BuildLockConflictError(self.lock_path, self.read())

            if self._try_create(lock):
                return lock
        except OSError as exc:
            raise BuildIOError(self.lock_path, exc) from exc
        raise BuildLockConflictError(self.lock_path, self.read())

    def release(self, lock: BuildLock) -> bool:
        current = self.read()
        if current is None:
            return False
        if (current.pid, current.hostname, current.acquired_at) != (
            lock.pid,
            lock.hostname,
            lock.acquired_at,
        ):
            logger.debug("not releasing build lock owned by %s", current.describe())
            return False
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            return False
        return True
