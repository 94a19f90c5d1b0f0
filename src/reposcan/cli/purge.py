"""CLI command: reposcan purge (delete scan jobs past retention)."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from reposcan.scanner.service import ScanService
from reposcan.storage.db import get_db
from reposcan.storage.repos import SqliteJobRepo

console = Console(stderr=True)


@click.command()
@click.pass_context
def purge(ctx: click.Context) -> None:
    """Delete stored scan jobs older than the retention period."""
    from reposcan.cli import load_config

    config = load_config(ctx)

    async def _run() -> int:
        db = await get_db(config.db_path)
        try:
            service = ScanService.from_config(config, SqliteJobRepo(db))
            return await service.purge_expired()
        finally:
            await db.close()

    count = asyncio.run(_run())
    console.print(
        f"Purged {count} job(s) older than {config.retention_days} day(s)."
    )
