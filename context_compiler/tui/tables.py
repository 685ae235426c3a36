from collections import Counter

from rich.markup import escape
from rich.panel import Panel
from rich.table import Column, Table

from context_compiler.build.orchestrator import BuildResult
from context_compiler.build.verify import OutputCheck
from context_compiler.compilers.base import CompilationResult
from context_compiler.models import BuildTarget, ValidationIssue
from context_compiler.tui.enums import OUTPUT_STATUS_STYLE, SEVERITY_STYLE, UIStyle


class BuildTable:
    @staticmethod
    def summary_block(result: BuildResult) -> Table:
        stats = result.stats
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Targets", ", ".join(stats.targets) or "none")
        table.add_row("Mode", "incremental" if stats.incremental else "full")
        table.add_row("Rules", str(stats.rules_processed))
        if stats.incremental:
            table.add_row("Changed", str(stats.rules_changed))
        table.add_row("Written", str(stats.files_written))
        if stats.files_removed:
            table.add_row("Removed", str(stats.files_removed))
        table.add_row("Tokens", str(stats.total_tokens))
        table.add_row("Duration", f"{stats.duration * 1000:.0f}ms")
        if stats.skipped:
            table.add_row("Status", f"[{UIStyle.DIM.value}]no changes[/{UIStyle.DIM.value}]")
        return table

    @staticmethod
    def compilations_table(compilations: dict[BuildTarget, CompilationResult]) -> Table:
        table = Table(
            Column(header="Target", width=10),
            Column(header="Outputs", width=8, justify="right"),
            Column(header="Rules", width=8, justify="right"),
            Column(header="Budget cut", width=10, justify="right"),
            Column(header="Tokens", width=8, justify="right"),
            expand=True,
            header_style="bold",
        )
        for target, compilation in compilations.items():
            selection = compilation.selection
            included = str(len(selection.rules)) if selection is not None else "-"
            cut = str(len(selection.excluded_by_budget)) if selection is not None else "-"
            style = UIStyle.GREEN.value if compilation.success else UIStyle.RED.value
            table.add_row(
                f"[{style}]{target.value}[/{style}]",
                str(len(compilation.outputs)),
                included,
                cut,
                str(compilation.total_tokens),
            )
        return table


class IssueTable:
    @staticmethod
    def counts_block(issues: list[ValidationIssue], rules_analyzed: int) -> Table:
        counts = Counter(issue.severity.value for issue in issues)
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Rules", str(rules_analyzed))
        table.add_row("Errors", str(counts.get("error", 0)))
        table.add_row("Warnings", str(counts.get("warning", 0)))
        return table

    @staticmethod
    def issues_table(issues: list[ValidationIssue]) -> Table:
        table = Table(
            Column(header="Severity", width=9),
            Column(header="Type", width=18),
            Column(header="Location", overflow="ellipsis", max_width=48),
            Column(header="Message", overflow="fold"),
            expand=True,
            header_style="bold",
        )
        for issue in issues:
            style = SEVERITY_STYLE.get(issue.severity, UIStyle.WHITE.value)
            table.add_row(
                f"[{style}]{issue.severity.value}[/{style}]",
                issue.kind.value,
                escape(issue.location),
                escape(issue.message),
            )
        return table


class VerifyTable:
    @staticmethod
    def outputs_table(checks: list[OutputCheck]) -> Table:
        table = Table(
            Column(header="Status", width=10),
            Column(header="Target", width=10),
            Column(header="Output", overflow="ellipsis"),
            expand=True,
            header_style="bold",
        )
        for check in checks:
            style = OUTPUT_STATUS_STYLE.get(check.status, UIStyle.WHITE.value)
            table.add_row(f"[{style}]{check.status.value}[/{style}]", check.target, escape(check.path))
        return table

    @staticmethod
    def stats_panel(checks: list[OutputCheck]) -> Panel:
        failed = sum(1 for check in checks if not check.ok)
        table = Table(show_header=False, box=None)
        table.add_row("[bold]verified[/bold]", str(len(checks) - failed))
        table.add_row("[bold]failed[/bold]", str(failed))
        return Panel(
            table,
            title="verify",
            border_style=UIStyle.GREEN.value if failed == 0 else UIStyle.RED.value,
        )
