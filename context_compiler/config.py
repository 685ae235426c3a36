"""Load and validate ``.context/config.yaml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional

import yaml
from jsonschema import Draft202012Validator

from context_compiler.constants import DEFAULT_BUDGET_MARGIN_PERCENT
from context_compiler.errors import ConfigError
from context_compiler.layout import ProjectLayout
from context_compiler.models import BuildTarget, SelectionStrategy
from context_compiler.selector import SelectionOptions
from context_compiler.utils import format_schema_error

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_VERSION = "1.0"
KNOWN_TOP_LEVEL_KEYS = ("version", "compile")

_TARGET_SCHEMA: dict[str, Any] = {
    "type": ["object", "null"],
    "properties": {
        "strategy": {"enum": [item.value for item in SelectionStrategy]},
        "max_tokens": {"type": "integer", "exclusiveMinimum": 0},
        "always_include": {"type": "array", "items": {"type": "string"}},
        "include_dirs": {"type": "array", "items": {"type": "string"}},
        "include_tags": {"type": "array", "items": {"type": "string"}},
        "budget_margin": {"type": "number", "minimum": 0, "maximum": 50},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "version": {"type": "string"},
        "compile": {
            "type": ["object", "null"],
            "properties": {target.value: _TARGET_SCHEMA for target in BuildTarget},
            "additionalProperties": False,
        },
    },
}

_VALIDATOR = Draft202012Validator(CONFIG_SCHEMA)


@dataclass(frozen=True)
class TargetConfig:
    strategy: SelectionStrategy = SelectionStrategy.PRIORITY
    max_tokens: Optional[int] = None
    always_include: tuple[str, ...] = ()
    include_dirs: tuple[str, ...] = ()
    include_tags: tuple[str, ...] = ()
    budget_margin: float = DEFAULT_BUDGET_MARGIN_PERCENT

    def selection_options(self) -> SelectionOptions:
        return SelectionOptions(
            strategy=self.strategy,
            include_dirs=self.include_dirs,
            include_tags=self.include_tags,
            max_tokens=self.max_tokens,
            always_include=self.always_include,
            margin_percent=self.budget_margin,
        )


DEFAULT_TARGETS: dict[BuildTarget, TargetConfig] = {
    BuildTarget.CLAUDE: TargetConfig(strategy=SelectionStrategy.PRIORITY, max_tokens=4000),
    BuildTarget.CURSOR: TargetConfig(strategy=SelectionStrategy.ALL),
    BuildTarget.AGENTS: TargetConfig(strategy=SelectionStrategy.PRIORITY, max_tokens=8000),
}


@dataclass
class ContextConfig:
    version: str = DEFAULT_CONFIG_VERSION
    targets: dict[BuildTarget, TargetConfig] = field(default_factory=lambda: dict(DEFAULT_TARGETS))
    source: str = "defaults"
    warnings: list[str] = field(default_factory=list)

    def target(self, target: BuildTarget) -> Optional[TargetConfig]:
        return self.targets.get(target)

    def configured_targets(self) -> list[BuildTarget]:
        return [target for target in BuildTarget if target in self.targets]

    def budgets(self) -> dict[str, int]:
        return {
            target.value: settings.max_tokens
            for target, settings in self.targets.items()
            if settings.max_tokens is not None
        }


def _target_from_payload(target: BuildTarget, payload: Optional[dict[str, Any]]) -> TargetConfig:
    base = DEFAULT_TARGETS[target]
    if not payload:
        return base
    updates: dict[str, Any] = {}
    if "strategy" in payload:
        updates["strategy"] = SelectionStrategy(payload["strategy"])
    if "max_tokens" in payload:
        updates["max_tokens"] = payload["max_tokens"]
    for key in ("always_include", "include_dirs", "include_tags"):
        if key in payload:
            updates[key] = tuple(payload[key])
    if "budget_margin" in payload:
        updates["budget_margin"] = float(payload["budget_margin"])
    return replace(base, **updates)


def parse_config(payload: Any, layout: ProjectLayout) -> ContextConfig:
    """Build a ``ContextConfig`` from an already-decoded YAML document."""
    if payload is None:
        return ContextConfig(source="defaults", warnings=["config.yaml is empty, using defaults"])
    if not isinstance(payload, dict):
        raise ConfigError(layout.config_path, "top-level value must be a mapping")

    error = next(iter(_VALIDATOR.iter_errors(payload)), None)
    if error is not None:
        raise ConfigError(layout.config_path, format_schema_error(error))

    warnings: list[str] = []
    unknown = [str(key) for key in payload if key not in KNOWN_TOP_LEVEL_KEYS]
    if unknown:
        warnings.append(f"Unknown configuration keys will be ignored: {', '.join(unknown)}")

    compile_section = payload.get("compile") or {}
    targets = {
        target: _target_from_payload(target, compile_section.get(target.value))
        for target in BuildTarget
        if target.value in compile_section
    }
    if not targets:
        targets = {BuildTarget.CLAUDE: DEFAULT_TARGETS[BuildTarget.CLAUDE]}

    return ContextConfig(
        version=str(payload.get("version", DEFAULT_CONFIG_VERSION)),
        targets=targets,
        source="file",
        warnings=warnings,
    )


def load_config(layout: ProjectLayout) -> ContextConfig:
    path = layout.config_path
    if not path.exists():
        return ContextConfig(source="defaults", warnings=["No config.yaml found, using defaults"])

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(path, f"failed to read file: {exc.strerror or exc}") from exc

    if not raw.strip():
        return ContextConfig(source="defaults", warnings=["config.yaml is empty, using defaults"])

    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        where = f" at line {line}" if line is not None else ""
        raise ConfigError(path, f"invalid YAML syntax{where}", line=line) from exc

    config = parse_config(payload, layout)
    for warning in config.warnings:
        logger.debug("config: %s", warning)
    return config
