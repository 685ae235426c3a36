import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from context_compiler.analysis import ValidationReport, analyze_rules, issue_from_parse_error
from context_compiler.build import BuildOptions, FileManifestStore, create_orchestrator, verify_outputs
from context_compiler.config import ContextConfig, load_config
from context_compiler.errors import ContextCompilerError
from context_compiler.layout import ProjectLayout
from context_compiler.models import BuildTarget, ExitCode
from context_compiler.rules import ContextRepository
from context_compiler.tui import ContextConsoleUI


TARGET_VALUES = [target.value for target in BuildTarget]


class RuntimeFailure(click.ClickException):
    exit_code = int(ExitCode.RUNTIME_ERROR)


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    logger = logging.getLogger("context_compiler")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def _layout_from_obj(obj: Dict[str, Any]) -> ProjectLayout:
    return ProjectLayout.discover(obj["root"])


def _require_context_dir(layout: ProjectLayout) -> None:
    if not layout.context_dir.is_dir():
        raise RuntimeFailure(
            f"{layout.context_dir} not found. Create .context/ with project.md and rules/ first."
        )


def _load_config_or_fail(layout: ProjectLayout) -> ContextConfig:
    try:
        return load_config(layout)
    except ContextCompilerError as exc:
        raise RuntimeFailure(str(exc))


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Project root containing .context/.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, root: Path, verbose: bool) -> None:
    """Compile .context/ rules into agent context files."""
    _configure_logging(verbose)
    ctx.obj = {"root": root, "verbose": verbose}


@cli.command(help="Compile rules into the configured target outputs.")
@click.option(
    "-t",
    "--target",
    "targets",
    multiple=True,
    type=click.Choice(TARGET_VALUES, case_sensitive=False),
    help="Target to build (repeatable). Defaults to the configured targets.",
)
@click.option("--force", is_flag=True, help="Ignore the build manifest and rebuild everything.")
@click.option("--check", is_flag=True, help="Fail if outputs are missing or out of date; write nothing.")
@click.option("--skip-validation", is_flag=True, help="Skip static analysis of the rules.")
@click.option(
    "--context-file",
    "context_files",
    multiple=True,
    help="File the glob strategy should match rules against (repeatable).",
)
@click.option("-q", "--quiet", is_flag=True, help="Only print errors.")
@click.pass_obj
def build(
    obj: Dict[str, Any],
    targets: tuple[str, ...],
    force: bool,
    check: bool,
    skip_validation: bool,
    context_files: tuple[str, ...],
    quiet: bool,
) -> None:
    ui = ContextConsoleUI(Console(), quiet=quiet)
    layout = _layout_from_obj(obj)
    _require_context_dir(layout)
    config = _load_config_or_fail(layout)
    ui.render_warnings([item for item in config.warnings if config.source == "file"])

    options = BuildOptions(
        targets=tuple(BuildTarget(item.lower()) for item in targets),
        force=force,
        check=check,
        skip_validation=skip_validation,
        context_files=context_files or None,
    )
    result = create_orchestrator(layout, config).build(options)
    ui.render_build(result, mode="check" if check else "build")

    if result.exit_code != ExitCode.SUCCESS:
        raise click.exceptions.Exit(int(result.exit_code))


def _lint_report(layout: ProjectLayout, config: ContextConfig, files: tuple[str, ...]) -> ValidationReport:
    rules, parse_errors = ContextRepository(layout).load_rules()
    if files:
        wanted = {(layout.root / item).resolve() for item in files}
        rules = [rule for rule in rules if rule.absolute_path.resolve() in wanted]

    report = ValidationReport(rules_analyzed=len(rules))
    report.extend([issue_from_parse_error(error) for error in parse_errors])
    if not parse_errors and rules:
        analysis = analyze_rules(rules, layout, config.budgets())
        report.extend(analysis.issues)
    return report


@cli.command(help="Run static analysis over the rules.")
@click.argument("files", nargs=-1)
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.option("-q", "--quiet", is_flag=True, help="Only print problems.")
@click.pass_obj
def lint(obj: Dict[str, Any], files: tuple[str, ...], as_json: bool, quiet: bool) -> None:
    layout = _layout_from_obj(obj)
    _require_context_dir(layout)
    config = _load_config_or_fail(layout)
    report = _lint_report(layout, config, files)

    if as_json:
        _echo_json(
            {
                "success": report.valid,
                "rules_linted": report.rules_analyzed,
                "errors": [issue.as_dict() for issue in report.errors],
                "warnings": [issue.as_dict() for issue in report.warnings],
            }
        )
    else:
        ContextConsoleUI(Console(), quiet=quiet).render_lint(report)

    if not report.valid:
        raise click.exceptions.Exit(int(ExitCode.FAILURE))


@cli.command(help="Verify the checksums embedded in generated outputs.")
@click.option("--json", "as_json", is_flag=True, help="Print the results as JSON.")
@click.pass_obj
def verify(obj: Dict[str, Any], as_json: bool) -> None:
    layout = _layout_from_obj(obj)
    _require_context_dir(layout)
    manifest = FileManifestStore(layout.manifest_path).load()
    checks = verify_outputs(layout, manifest) if manifest is not None else []
    valid = manifest is not None and all(check.ok for check in checks)

    if as_json:
        _echo_json(
            {
                "success": valid,
                "outputs": [
                    {"path": check.path, "target": check.target, "status": check.status.value}
                    for check in checks
                ],
            }
        )
    else:
        ContextConsoleUI(Console()).render_verify(checks)

    if not valid:
        raise click.exceptions.Exit(int(ExitCode.FAILURE))


def main(argv: Optional[list[str]] = None) -> int:
    try:
        outcome = cli(args=argv, standalone_mode=False)
    except click.exceptions.Exit as exc:
        code = exc.exit_code
        return code if isinstance(code, int) else 1
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    return outcome if isinstance(outcome, int) else 0


if __name__ == "__main__":
    raise SystemExit(main())
