"""CLI command: reposcan tools (list analyzers and their availability)."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from reposcan.scanner.tools import TOOL_REGISTRY, tool_available

console = Console()


@click.command()
def tools() -> None:
    """Show every analyzer reposcan can run and whether it is installed."""
    table = Table(title="Analyzers")
    table.add_column("Tool", style="cyan")
    table.add_column("Executable")
    table.add_column("Category")
    table.add_column("Languages")
    table.add_column("Installed")

    for spec in TOOL_REGISTRY.values():
        languages = ", ".join(sorted(lang.value for lang in spec.languages)) or "all"
        installed = "[green]yes[/green]" if tool_available(spec) else "[red]no[/red]"
        table.add_row(
            spec.name.value,
            spec.executable,
            spec.category.value,
            languages,
            installed,
        )

    console.print(table)
