import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class IssueKind(str, Enum):
    DUPLICATE_ID = "duplicate-id"
    DEAD_LINK = "dead-link"
    CIRCULAR_REFERENCE = "circular-reference"
    PATH_TRAVERSAL = "path-traversal"
    SCHEMA = "schema"
    GHOST_RULE = "ghost-rule"
    TOKEN_LIMIT = "token-limit"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ContentType(str, Enum):
    PROSE = "prose"
    CODE = "code"
    MIXED = "mixed"
    CJK = "cjk"


class SelectionStrategy(str, Enum):
    PRIORITY = "priority"
    DIRECTORY = "directory"
    GLOB = "glob"
    TAG = "tag"
    ALL = "all"


class BuildTarget(str, Enum):
    CLAUDE = "claude"
    CURSOR = "cursor"
    AGENTS = "agents"


class BuildPhase(str, Enum):
    ACQUIRE_LOCK = "acquire_lock"
    LOAD_MANIFEST = "load_manifest"
    DETECT_CHANGES = "detect_changes"
    COMPILE = "compile"
    WRITE_TRANSACTION = "write_transaction"
    PERSIST_MANIFEST = "persist_manifest"
    RELEASE_LOCK = "release_lock"


class BuildOutcome(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class FailureKind(str, Enum):
    VALIDATION = "validation"
    BUILD = "build"
    OPERATIONAL = "operational"


class OutputStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    MODIFIED = "modified"
    UNSIGNED = "unsigned"


class ExitCode(int, Enum):
    SUCCESS = 0
    FAILURE = 1
    RUNTIME_ERROR = 2


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    severity: Severity
    message: str
    path: str
    line: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}" if self.line is not None else self.path

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.kind.value,
            "message": self.message,
            "path": self.path,
        }
        if self.line is not None:
            payload["line"] = self.line
        return payload

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message} ({self.location})"


@dataclass(frozen=True)
class BuildLock:
    pid: int
    hostname: str
    acquired_at: float
    target: str = ""

    @classmethod
    def for_current_process(cls, pid: int, acquired_at: float, target: str) -> "BuildLock":
        return cls(pid=pid, hostname=socket.gethostname(), acquired_at=acquired_at, target=target)

    def age(self, now: float) -> float:
        return now - self.acquired_at

    def describe(self) -> str:
        suffix = f" for target {self.target}" if self.target else ""
        return f"PID {self.pid} on {self.hostname}{suffix}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "hostname": self.hostname,
            "acquired_at": self.acquired_at,
            "target": self.target,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> Optional["BuildLock"]:
        if not isinstance(payload, dict):
            return None
        try:
            return cls(
                pid=int(payload["pid"]),
                hostname=str(payload["hostname"]),
                acquired_at=float(payload["acquired_at"]),
                target=str(payload.get("target", "")),
            )
        except (KeyError, TypeError, ValueError):
            return None
