from typing import Final


CONTEXT_DIRNAME: Final[str] = ".context"
RULES_DIRNAME: Final[str] = "rules"
CONFIG_FILENAME: Final[str] = "config.yaml"
PROJECT_DOC_FILENAME: Final[str] = "project.md"
ARCHITECTURE_DOC_FILENAME: Final[str] = "architecture.md"
MANIFEST_FILENAME: Final[str] = ".build-manifest.json"
LOCK_FILENAME: Final[str] = ".build.lock"

CLAUDE_FILENAME: Final[str] = "CLAUDE.md"
AGENTS_FILENAME: Final[str] = "AGENTS.md"
CURSOR_RULES_DIR: Final[str] = ".cursor/rules"
CURSOR_RULE_SUFFIX: Final[str] = ".mdc"
RULE_SUFFIX: Final[str] = ".md"

MANIFEST_VERSION: Final[str] = "1.0"
HASH_ALGORITHM: Final[str] = "sha256"

STALE_LOCK_SECONDS: Final[float] = 5 * 60
DEFAULT_PRIORITY: Final[int] = 50
DEFAULT_BUDGET_MARGIN_PERCENT: Final[float] = 5.0
TOKEN_PRESSURE_RATIO: Final[float] = 0.9

PROJECT_WALK_IGNORED_DIRS: Final[tuple[str, ...]] = (
    "node_modules",
    ".git",
    "dist",
    "coverage",
    ".venv",
    "__pycache__",
)
