"""
plancheck CLI - PostgreSQL EXPLAIN plan analyzer.

Accepts EXPLAIN output in JSON or TEXT form, including psql and pgAdmin
copies.

Usage:
    plancheck analyze explain.txt
    psql -XqAt -c "EXPLAIN (ANALYZE, FORMAT JSON) SELECT ..." | plancheck analyze -
    plancheck analyze --json explain.json
    plancheck detectors
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from plancheck import __version__
from plancheck.analyzer.models import Finding, Impact
from plancheck.config import get_config
from plancheck.exceptions import EmptyInputError
from plancheck.service import AnalysisReport, AnalysisService

app = typer.Typer(
    name="plancheck",
    help="PostgreSQL EXPLAIN plan analyzer",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

IMPACT_STYLES = {
    Impact.HIGH: "red bold",
    Impact.MEDIUM: "yellow",
    Impact.LOW: "blue",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"plancheck version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log parser and detector events to stderr."),
    ] = False,
) -> None:
    """plancheck - PostgreSQL EXPLAIN plan analyzer."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def read_input(source: str) -> str:
    """Read EXPLAIN text from a file path, or from stdin when source is "-"."""
    if source == "-":
        return sys.stdin.read()

    path = Path(source)
    if not path.is_file():
        error_console.print(f"[red]Error:[/red] File not found: {source}")
        raise typer.Exit(code=1)
    return path.read_text(encoding="utf-8")


def print_finding(index: int, finding: Finding) -> None:
    style = IMPACT_STYLES[finding.impact]
    console.print(
        f"{index}. [{style}][{finding.impact.value.upper()}][/{style}] {finding.title} "
        f"[dim]({finding.id}, {finding.confidence.value})[/dim]"
    )
    console.print(f"   {finding.education.behavior}")

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Evidence", style="cyan")
    table.add_column("Location", style="dim")
    for evidence in finding.evidence:
        table.add_row(evidence.raw_text, evidence.location)
    console.print(table)

    console.print("   [bold]Cannot determine:[/bold]")
    for limitation in finding.education.limitations:
        console.print(f"   [dim]- {limitation}[/dim]")
    console.print(f"   [dim]{finding.education.docs_link}[/dim]")
    console.print()


def print_report(report: AnalysisReport) -> None:
    analysis_input = report.input
    timing = []
    if analysis_input.planning_time_ms is not None:
        timing.append(f"planning {analysis_input.planning_time_ms} ms")
    if analysis_input.execution_time_ms is not None:
        timing.append(f"execution {analysis_input.execution_time_ms} ms")
    nodes = sum(tree.node_count for tree in analysis_input.all_trees)
    summary = (
        f"Parsed {nodes} node(s) via {analysis_input.source.value} parser"
        + (f"; {', '.join(timing)}" if timing else "")
    )

    if not report.findings:
        console.print(Panel(
            f"[green]No performance issues found![/green]\n\n{summary}.",
            title="plancheck",
            border_style="green",
        ))
        return

    console.print(f"[bold]Found {len(report.findings)} issue(s):[/bold]\n")
    for index, finding in enumerate(report.findings, 1):
        print_finding(index, finding)
    console.print(f"[dim]{summary}. Analysis took {report.analysis_time_ms:.1f} ms.[/dim]")


@app.command()
def analyze(
    source: Annotated[
        str,
        typer.Argument(help="Path to a file with EXPLAIN output, or - for stdin"),
    ],
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output the full report as JSON",
        ),
    ] = False,
    timeout_ms: Annotated[
        Optional[int],
        typer.Option(
            "--timeout-ms",
            min=1,
            help="Deadline for the primary parser in milliseconds",
        ),
    ] = None,
) -> None:
    """
    Analyze PostgreSQL EXPLAIN output for performance issues.

    Examples:

        $ psql -XqAt -c "EXPLAIN (ANALYZE, BUFFERS) SELECT ..." > plan.txt
        $ plancheck analyze plan.txt
    """
    config = get_config()
    if timeout_ms is not None:
        config = config.model_copy(update={"primary_timeout_ms": timeout_ms})

    raw_text = read_input(source)
    try:
        report = AnalysisService(config=config).analyze(raw_text)
    except EmptyInputError as e:
        error_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)

    if json_output:
        console.print_json(report.to_json())
    else:
        print_report(report)

    if report.input.is_parse_error:
        error_console.print(f"[red]Error:[/red] {report.input.tree.description}")
        raise typer.Exit(code=1)


@app.command()
def detectors() -> None:
    """
    List all available detectors.

    Detectors run on every plan node in the order listed.
    """
    from plancheck.analyzer.registry import get_registry

    config = get_config()
    table = Table()
    table.add_column("#", style="dim")
    table.add_column("Detector ID", style="cyan")
    table.add_column("Confidence")
    table.add_column("Enabled")
    table.add_column("Description")

    for index, detector_cls in enumerate(get_registry().all(), 1):
        enabled = config.is_detector_enabled(detector_cls.detector_id)
        table.add_row(
            str(index),
            detector_cls.detector_id,
            detector_cls.confidence.value,
            "[green]yes[/green]" if enabled else "[red]no[/red]",
            detector_cls.description,
        )

    console.print(table)


if __name__ == "__main__":
    app()
