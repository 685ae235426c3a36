"""Frontmatter schema and its single validation entry point."""

from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator

from context_compiler.constants import DEFAULT_PRIORITY
from context_compiler.errors import RuleParseError
from context_compiler.rules.models import RuleFrontmatter
from context_compiler.utils import format_schema_error

RULE_FRONTMATTER_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string", "minLength": 1, "pattern": r"\S"},
        "description": {"type": "string"},
        "domain": {"type": "string"},
        "globs": {
            "oneOf": [
                {"type": "string", "minLength": 1},
                {"type": "array", "items": {"type": "string", "minLength": 1}},
            ]
        },
        "priority": {"type": "integer", "minimum": 0, "maximum": 100},
        "tags": {"type": "array", "items": {"type": "string"}},
        "always_apply": {"type": "boolean"},
    },
}

_VALIDATOR = Draft202012Validator(RULE_FRONTMATTER_SCHEMA)


def validate_frontmatter(raw: Any, path: str) -> RuleFrontmatter:
    if not isinstance(raw, dict):
        raise RuleParseError(path, "Frontmatter must be a YAML mapping")

    error = next(iter(_VALIDATOR.iter_errors(raw)), None)
    if error is not None:
        raise RuleParseError(path, f"Invalid frontmatter ({format_schema_error(error)})")

    globs = raw.get("globs")
    if isinstance(globs, str):
        globs = [globs]

    return RuleFrontmatter(
        id=raw["id"].strip(),
        description=raw.get("description"),
        domain=raw.get("domain"),
        priority=raw.get("priority", DEFAULT_PRIORITY),
        tags=tuple(raw.get("tags", [])),
        always_apply=raw.get("always_apply", False),
        globs=tuple(globs or ()),
    )
