"""CLI command: reposcan scan <url> (run one scan in the foreground)."""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.table import Table

from reposcan.scanner.models import JobStatus, ScanJob, Severity
from reposcan.scanner.service import ScanService
from reposcan.scanner.validator import ValidationError
from reposcan.storage.repos import InMemoryJobRepo

console = Console(stderr=True)

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "magenta",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


@click.command()
@click.argument("repo_url")
@click.option("--json", "as_json", is_flag=True, help="Print the job as JSON on stdout.")
@click.pass_context
def scan(ctx: click.Context, repo_url: str, as_json: bool) -> None:
    """Clone a GitHub repository and run the security tools against it."""
    from reposcan.cli import load_config

    config = load_config(ctx)
    service = ScanService.from_config(config, InMemoryJobRepo())

    if not as_json:
        console.print(f"[bold]reposcan[/bold] scanning [cyan]{repo_url}[/cyan]\n")

    try:
        job = asyncio.run(_run(service, repo_url))
    except ValidationError as e:
        console.print(f"[red]{e.message}[/red]")
        if e.example:
            console.print(f"  [dim]Example: {e.example}[/dim]")
        sys.exit(2)

    if as_json:
        click.echo(json.dumps(job.to_dict(), indent=2))
    else:
        _print_job(job)

    if job.status == JobStatus.FAILED:
        sys.exit(1)
    critical = job.severity_counts()[Severity.CRITICAL.value]
    if critical > 0:
        if not as_json:
            console.print(f"\n[red]{critical} critical finding(s)[/red]")
        sys.exit(1)


async def _run(service: ScanService, repo_url: str) -> ScanJob:
    job = await service.start_scan(repo_url)
    try:
        return await service.wait(job.id)
    finally:
        await service.shutdown()


def _print_job(job: ScanJob) -> None:
    if job.status == JobStatus.FAILED:
        console.print(f"[red]Scan failed:[/red] {job.error_message}")
        return

    if job.languages:
        console.print(f"Languages: {', '.join(job.languages)}")

    runs = Table(title="Tools", show_lines=False)
    runs.add_column("Tool", style="cyan")
    runs.add_column("Findings", justify="right")
    runs.add_column("Time", justify="right")
    runs.add_column("Status")
    for run in job.tool_runs:
        if run.error:
            status = f"[yellow]{run.error}[/yellow]"
        else:
            status = "[green]ok[/green]"
        runs.add_row(run.tool, str(run.finding_count), f"{run.duration:.1f}s", status)
    console.print(runs)

    if not job.findings:
        console.print("[green]No findings.[/green]")
        return

    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity", style="bold", width=10)
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Tool")
    table.add_column("Description", max_width=60)

    for finding in job.findings:
        color = _SEVERITY_COLORS.get(finding.severity, "white")
        table.add_row(
            f"[{color}]{finding.severity.value}[/{color}]",
            finding.file_path or "-",
            str(finding.line_number) if finding.line_number else "",
            finding.tool,
            finding.description[:60],
        )

    console.print(table)
    counts = job.severity_counts()
    console.print(
        "\nTotal findings: %d (%s)"
        % (len(job.findings), ", ".join(f"{k}: {v}" for k, v in counts.items()))
    )
    if job.review_stats.findings_reviewed:
        console.print(
            f"AI review: {job.review_stats.findings_reviewed} finding(s) "
            f"in {job.review_stats.files_reviewed} file(s)"
        )
