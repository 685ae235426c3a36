from typing import Optional

from rich.console import Console

from context_compiler.analysis.validator import ValidationReport
from context_compiler.build.orchestrator import BuildResult
from context_compiler.build.verify import OutputCheck
from context_compiler.tui.enums import UIStyle
from context_compiler.tui.sections import UISection
from context_compiler.tui.tables import BuildTable, IssueTable, VerifyTable


class ContextConsoleUI:
    def __init__(self, console: Optional[Console] = None, quiet: bool = False) -> None:
        self.console = console or Console()
        self.quiet = quiet

    def render_build(self, result: BuildResult, mode: str = "build") -> None:
        if self.quiet and result.success:
            return

        if result.issues:
            self.console.print(
                UISection.wrap(
                    "validation", IssueTable.issues_table(result.issues), style=UIStyle.YELLOW.value
                )
            )

        if not self.quiet:
            border = UIStyle.GREEN.value if result.success else UIStyle.RED.value
            self.console.print(UISection.wrap(mode, BuildTable.summary_block(result), style=border))
            if result.compilations:
                self.console.print(
                    UISection.wrap(
                        "targets",
                        BuildTable.compilations_table(result.compilations),
                        style=UIStyle.CYAN.value,
                    )
                )
            if result.written:
                self.console.print(UISection.bullets("written", result.written, style=UIStyle.GREEN.value))
            if result.removed:
                self.console.print(UISection.bullets("removed", result.removed, style=UIStyle.MAGENTA.value))

        warnings = [item for item in result.warnings if not self._is_issue_text(item, result)]
        if warnings and not self.quiet:
            self.console.print(UISection.bullets("warnings", warnings, style=UIStyle.YELLOW.value))
        errors = [item for item in result.errors if not self._is_issue_text(item, result)]
        if errors:
            self.console.print(UISection.bullets("errors", errors, style=UIStyle.RED.value))

    @staticmethod
    def _is_issue_text(text: str, result: BuildResult) -> bool:
        return any(text == str(issue) for issue in result.issues)

    def render_lint(self, report: ValidationReport) -> None:
        issues = report.issues
        border = UIStyle.GREEN.value if report.valid else UIStyle.RED.value
        self.console.print(
            UISection.wrap("lint", IssueTable.counts_block(issues, report.rules_analyzed), style=border)
        )
        if issues:
            self.console.print(
                UISection.wrap("issues", IssueTable.issues_table(issues), style=UIStyle.YELLOW.value)
            )
        elif not self.quiet:
            self.console.print(UISection.note("issues", "No issues found.", style=UIStyle.DIM.value))

    def render_verify(self, checks: list[OutputCheck]) -> None:
        if not checks:
            self.console.print(
                UISection.note(
                    "verify",
                    "No generated outputs recorded. Run `ctx build` first.",
                    style=UIStyle.YELLOW.value,
                )
            )
            return
        self.console.print(VerifyTable.stats_panel(checks))
        if not self.quiet or any(not check.ok for check in checks):
            self.console.print(
                UISection.wrap("outputs", VerifyTable.outputs_table(checks), style=UIStyle.BLUE.value)
            )

    def render_warnings(self, warnings: list[str]) -> None:
        if warnings and not self.quiet:
            self.console.print(UISection.bullets("config", warnings, style=UIStyle.DIM.value))
