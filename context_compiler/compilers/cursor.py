from __future__ import annotations

import re

import yaml

from context_compiler.compilers.base import (
    CompilationResult,
    CompilerContext,
    ITargetCompiler,
    OutputFile,
    add_build_metadata,
)
from context_compiler.constants import CURSOR_RULE_SUFFIX, CURSOR_RULES_DIR, RULE_SUFFIX
from context_compiler.estimator import estimate_tokens
from context_compiler.models import BuildTarget
from context_compiler.rules.models import Rule
from context_compiler.selector import SelectionContext, select

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def cursor_file_name(rule: Rule) -> str:
    stem = rule.source_path[: -len(RULE_SUFFIX)] if rule.source_path.endswith(RULE_SUFFIX) else rule.source_path
    flat = re.sub(r"[/\\]", "-", stem)
    return f"{_UNSAFE_NAME_CHARS.sub('_', flat)}{CURSOR_RULE_SUFFIX}"


def cursor_output_path(rule: Rule) -> str:
    return f"{CURSOR_RULES_DIR}/{cursor_file_name(rule)}"


def render_mdc(rule: Rule) -> str:
    fm = {
        "description": rule.description or rule.id,
        "globs": list(rule.effective_globs),
        "alwaysApply": rule.always_apply,
    }
    parts = [
        "---",
        yaml.safe_dump(fm, default_flow_style=False, sort_keys=False).rstrip(),
        "---",
        "",
        rule.body,
    ]
    return "\n".join(parts) + "\n"


class CursorCompiler(ITargetCompiler):
    """Compile each selected rule to its own ``.cursor/rules/*.mdc`` file."""

    target = BuildTarget.CURSOR

    def compile(self, context: CompilerContext) -> CompilationResult:
        result = CompilationResult(target=self.target)
        selection = select(
            context.rules,
            context.settings.selection_options(),
            SelectionContext(context_files=context.context_files),
        )
        result.selection = selection
        if not selection.rules:
            result.warnings.append("No rules selected for the cursor target")

        shared = context.shared_sources()
        seen: dict[str, str] = {}
        for rule in selection.rules:
            path = cursor_output_path(rule)
            if path in seen:
                result.errors.append(
                    f"Rules {seen[path]} and {rule.source_path} both compile to {path}"
                )
                continue
            seen[path] = rule.source_path
            body = render_mdc(rule)
            result.outputs.append(
                OutputFile(
                    path=path,
                    content=add_build_metadata(body, context.timestamp),
                    tokens=estimate_tokens(body),
                    sources=tuple(sorted([context.rule_source(rule)] + shared)),
                )
            )
        return result
