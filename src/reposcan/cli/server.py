"""CLI command: reposcan server (start the HTTP API)."""

from __future__ import annotations

import asyncio

import click
import uvicorn
from rich.console import Console

console = Console(stderr=True)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 8480).",
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Start the reposcan HTTP API."""
    from reposcan.cli import load_config
    from reposcan.web.app import create_app

    config = load_config(ctx)
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]reposcan[/bold] API starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}/api[/cyan]"
    )
    if not config.ai_review_enabled:
        console.print("  [dim]AI review disabled (OPENAI_API_KEY not set)[/dim]")

    async def _run() -> None:
        app = await create_app(config)
        server_config = uvicorn.Config(
            app,
            host=config.web_host,
            port=config.web_port,
            log_level="debug" if config.verbose else "info",
        )
        srv = uvicorn.Server(server_config)
        await srv.serve()

    asyncio.run(_run())
