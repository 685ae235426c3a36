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
from context_compiler.constants import AGENTS_FILENAME
from context_compiler.estimator import estimate_tokens
from context_compiler.models import BuildTarget
from context_compiler.rules.models import Rule
from context_compiler.selector import SelectionContext, select


def first_paragraph(body: str) -> str:
    return body.split("\n\n", 1)[0].strip()


def rule_summary(rule: Rule) -> str:
    """Condensed view of a rule: heading, metadata lines and first paragraph."""
    lines = [f"### {rule.id}", ""]
    if rule.description:
        lines += [f"**Description:** {rule.description}", ""]
    if rule.tags:
        lines += [f"**Tags:** {', '.join(rule.tags)}", ""]
    if rule.frontmatter.domain:
        lines += [f"**Domain:** {rule.frontmatter.domain}", ""]
    paragraph = first_paragraph(rule.body)
    if paragraph:
        lines += [paragraph, ""]
    return "\n".join(lines)


def summary_tokens(rule: Rule) -> int:
    return estimate_tokens(rule_summary(rule))


class AgentsCompiler(ITargetCompiler):
    """Compile project context and rule summaries into ``AGENTS.md``."""

    target = BuildTarget.AGENTS

    def compile(self, context: CompilerContext) -> CompilationResult:
        result = CompilationResult(target=self.target)
        project = context.repository.read_project_doc()
        if project is None:
            result.errors.append("project.md is required for the agents target but was not found")
            return result

        architecture = context.repository.read_architecture_doc()
        if architecture is None:
            result.warnings.append("architecture.md not found, compiling without it")

        meta = meta_rule()
        budget = remaining_rule_budget(context.settings, [project, architecture or "", meta])
        options = replace(context.settings.selection_options(), max_tokens=budget, margin_percent=0)
        selection = select(
            context.rules,
            options,
            SelectionContext(context_files=context.context_files),
            measure=summary_tokens,
        )
        result.selection = selection

        for rule in selection.excluded_by_budget:
            result.warnings.append(f"Rule {rule.id} excluded by the token budget")
        if not selection.rules and context.rules:
            result.warnings.append("No rules included in AGENTS.md after budget constraints")

        body = self._render(project, architecture, selection.rules, meta)
        content = add_build_metadata(body, context.timestamp)
        sources = [context.rule_source(rule) for rule in selection.rules] + context.shared_sources()
        result.outputs.append(
            OutputFile(
                path=AGENTS_FILENAME,
                content=content,
                tokens=estimate_tokens(body),
                sources=tuple(sorted(sources)),
            )
        )
        return result

    @staticmethod
    def _render(project: str, architecture: str | None, rules: list[Rule], meta: str) -> str:
        sections = [
            "# Agent Context",
            "",
            "This document provides context for AI agents working with this project.",
            "",
            "## Project Overview",
            "",
            project,
            "",
        ]
        if architecture:
            sections += ["## Architecture", "", architecture, ""]
        if rules:
            sections += ["## Rules and Guidelines", ""]
            sections += [rule_summary(rule) for rule in rules]
        sections.append(directory_index(rules))
        sections.append(meta)
        return "\n".join(sections) + "\n"
