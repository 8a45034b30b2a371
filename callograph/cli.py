"""CLI entry point for Callograph."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from callograph import __version__
from callograph.core.analyzer import Analyzer
from callograph.core.config import AnalysisConfig, load_config, parse_severity
from callograph.core.exceptions import ConfigError
from callograph.core.models import AnalysisReport, AsyncResult, Severity
from callograph.report import filter_async_results, report_to_dict

app = typer.Typer(
    name="callograph",
    help="Purity and async-safety analysis for Python codebases.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

_SEVERITY_STYLE = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def setup_logging(verbose: bool) -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"callograph {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """Purity and async-safety analysis for Python codebases."""


def build_config(
    path: Path,
    config_file: Path | None,
    ignore: list[str] | None,
    severity: str | None,
    fail_on_impure: bool,
    fail_on_async: bool,
) -> AnalysisConfig:
    """Load the project configuration and apply command line overrides.

    Raises:
        ConfigError: Configuration is missing or malformed
    """
    config = load_config(path, config_file)
    if ignore:
        config.ignore = config.ignore + list(ignore)
    if severity is not None:
        config.severity = parse_severity(severity)
    config.fail_on_impure = config.fail_on_impure or fail_on_impure
    config.fail_on_async = config.fail_on_async or fail_on_async
    return config


def print_report(report: AnalysisReport, async_results: list[AsyncResult]) -> None:
    """Print a human-readable report."""
    console.print(
        f"[bold]Call graph[/] [dim]({len(report.functions)} functions, "
        f"{report.graph.num_edges} edges)[/]"
    )
    for caller_id, callee_id in report.graph.edges():
        caller = report.function(caller_id)
        callee = report.function(callee_id)
        if caller is None or callee is None:
            continue
        console.print(
            f"  [cyan]{caller.name}[/] [dim]({caller.file}:{caller.line})[/] -> "
            f"[cyan]{callee.name}[/] [dim]({callee.file}:{callee.line})[/]"
        )

    impure = report.impure
    console.print(f"\n[bold]Purity[/] [dim]({len(impure)} impure)[/]")
    if not impure:
        console.print("  [green]All functions are pure[/]")
    for result in impure:
        console.print(f"  [cyan]{result.name}[/] [dim]({result.file}:{result.line})[/]")
        for reason in result.reasons:
            console.print(f"    - {reason}", markup=False, highlight=False)

    issue_count = sum(len(result.issues) for result in async_results)
    console.print(f"\n[bold]Async safety[/] [dim]({issue_count} issues)[/]")
    if not async_results:
        console.print("  [green]No async issues[/]")
    for result in async_results:
        console.print(f"  [cyan]{result.name}[/] [dim]({result.file}:{result.line})[/]")
        for issue in result.issues:
            style = _SEVERITY_STYLE[issue.severity]
            console.print(f"    [{style}]{issue.severity.value}[/]: ", end="")
            console.print(issue.message, markup=False, highlight=False)

    if report.errors:
        console.print(f"\n[red]Skipped files: {len(report.errors)}[/red]")
        for error in report.errors:
            console.print(f"  {error}", markup=False, highlight=False)


@app.command()
def analyze(
    path: Annotated[Path, typer.Argument(help="Project root to analyze")] = Path("."),
    config_file: Annotated[
        Path | None, typer.Option("--config", help="TOML file with callograph settings")
    ] = None,
    ignore: Annotated[
        list[str] | None, typer.Option("--ignore", "-i", help="Path substrings to skip")
    ] = None,
    severity: Annotated[
        str | None,
        typer.Option("--severity", help="Lowest async severity to report: error, warning, info"),
    ] = None,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
    fail_on_impure: Annotated[
        bool, typer.Option("--fail-on-impure", help="Exit with 1 if any function is impure")
    ] = False,
    fail_on_async: Annotated[
        bool, typer.Option("--fail-on-async", help="Exit with 1 if any async issue is reported")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logs")] = False,
) -> None:
    """Analyze a project for impure functions and async hazards."""
    setup_logging(verbose)

    try:
        config = build_config(path, config_file, ignore, severity, fail_on_impure, fail_on_async)
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=2) from e

    analyzer = Analyzer(config)
    if output_json:
        report = analyzer.run()
    else:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"Analyzing [cyan]{config.root.name}[/]", total=None)

            def on_phase(description: str) -> None:
                progress.update(task, description=description)

            report = analyzer.run(on_phase=on_phase)

    async_results = filter_async_results(report.async_results, config.severity)

    if output_json:
        print(json.dumps(report_to_dict(report, config.severity), indent=2))
    else:
        print_report(report, async_results)

    if (config.fail_on_impure and report.impure) or (config.fail_on_async and async_results):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
