from __future__ import annotations

from dataclasses import replace

from context_compiler.compilers.base import (
    CompilationResult,
    CompilerContext,
    ITargetCompiler,
    OutputFile,
    add_build_metadata,
    directory_index,
    meta_rule,
    remaining_rule_budget,
)
from context_compiler.constants import CLAUDE_FILENAME
from context_compiler.estimator import estimate_tokens
from context_compiler.models import BuildTarget
from context_compiler.rules.models import Rule
from context_compiler.selector import SelectionContext, select


class ClaudeCompiler(ITargetCompiler):
    """Compile project context and the selected rules into ``CLAUDE.md``."""

    target = BuildTarget.CLAUDE

    def compile(self, context: CompilerContext) -> CompilationResult:
        result = CompilationResult(target=self.target)
        project = context.repository.read_project_doc()
        if project is None:
            result.errors.append("project.md is required for the claude target but was not found")
            return result

        architecture = context.repository.read_architecture_doc()
        if architecture is None:
            result.warnings.append("architecture.md not found, compiling without it")

        meta = meta_rule()
        budget = remaining_rule_budget(context.settings, [project, architecture or "", meta])
        options = replace(context.settings.selection_options(), max_tokens=budget, margin_percent=0)
        selection = select(context.rules, options, SelectionContext(context_files=context.context_files))
        result.selection = selection

        if selection.excluded_by_budget:
            result.warnings.append(
                f"{len(selection.excluded_by_budget)} rule(s) excluded by the token budget"
            )
        if not selection.rules and context.rules:
            result.warnings.append("No rules selected after filtering and budget constraints")

        body = self._render(project, architecture, selection.rules, meta)
        content = add_build_metadata(body, context.timestamp)
        sources = [context.rule_source(rule) for rule in selection.rules] + context.shared_sources()
        result.outputs.append(
            OutputFile(
                path=CLAUDE_FILENAME,
                content=content,
                tokens=estimate_tokens(body),
                sources=tuple(sorted(sources)),
            )
        )
        return result

    @staticmethod
    def _render(project: str, architecture: str | None, rules: list[Rule], meta: str) -> str:
        sections = ["# Project Context", "", project, ""]
        if architecture:
            sections += ["## Architecture", "", architecture, ""]
        sections.append(directory_index(rules))
        if rules:
            sections += ["## Rules", ""]
            for rule in rules:
                sections += [f"### {rule.id}", ""]
                if rule.description:
                    sections += [f"*{rule.description}*", ""]
                sections += [rule.body, ""]
        sections.append(meta)
        return "\n".join(sections) + "\n"
