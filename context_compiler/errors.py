from pathlib import Path
from typing import Optional

from context_compiler.models import BuildLock, IssueKind


class ContextCompilerError(Exception):
    """Base user-facing application error."""


class ContextFileError(ContextCompilerError):
    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


class ConfigError(ContextFileError):
    def __init__(self, path: Path, detail: str, line: Optional[int] = None) -> None:
        self.detail = detail
        self.line = line
        super().__init__(path=path, message=f"Invalid configuration ({detail})")


class PathSecurityError(ContextCompilerError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path!r}")


class RuleParseError(ContextCompilerError):
    def __init__(
        self,
        path: str,
        message: str,
        kind: IssueKind = IssueKind.SCHEMA,
        line: Optional[int] = None,
    ) -> None:
        self.path = path
        self.message = message
        self.kind = kind
        self.line = line
        location = f"{path}:{line}" if line is not None else path
        super().__init__(f"{message} ({location})")


class BuildLockConflictError(ContextCompilerError):
    def __init__(self, lock_path: Path, holder: Optional[BuildLock]) -> None:
        self.lock_path = lock_path
        self.holder = holder
        if holder is None:
            detail = "held by an unknown process"
        else:
            detail = f"held by {holder.describe()}"
        super().__init__(f"Build already in progress ({detail}): {lock_path}")


class BuildIOError(ContextFileError):
    def __init__(self, path: Path, error: OSError) -> None:
        self.error = error
        reason = error.strerror or str(error)
        super().__init__(path=path, message=f"I/O failure ({reason})")
