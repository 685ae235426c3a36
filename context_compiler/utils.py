import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from context_compiler.constants import HASH_ALGORITHM


def utc_stamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def read_json_safe(path: Path) -> tuple[Any | None, str | None]:
    if not path.exists():
        return None, None
    if path.stat().st_size == 0:
        return None, None
    try:
        return read_json(path), None
    except (OSError, ValueError) as exc:
        return None, str(exc)


def dump_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def content_hash(content: str | bytes) -> str:
    data = content.encode("utf-8") if isinstance(content, str) else content
    digest = hashlib.new(HASH_ALGORITHM, data).hexdigest()
    return f"{HASH_ALGORITHM}:{digest}"


def file_hash(path: Path) -> str:
    return content_hash(path.read_bytes())


def relative_posix(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def compact_home_paths_in_text(text: str) -> str:
    home = str(Path.home())
    if text == home:
        return "~"
    return text.replace(f"{home}/", "~/")


def format_schema_error(error: Any) -> str:
    path = ".".join([str(part) for part in error.path])
    return f"{error.message} at {path}" if path else str(error.message)
