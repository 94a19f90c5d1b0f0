"""CLI entry point: Click group with global options."""

from __future__ import annotations

import logging
import os

import click
from rich.console import Console

from reposcan import __version__
from reposcan.config import ConfigError, ReposcanConfig
from reposcan.redact import RedactingFilter


@click.group()
@click.version_option(version=__version__, prog_name="reposcan")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """reposcan: security scanning for GitHub repositories."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    redactor = RedactingFilter(
        os.environ.get("GITHUB_TOKEN", ""),
        os.environ.get("OPENAI_API_KEY", ""),
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(redactor)


def load_config(ctx: click.Context) -> ReposcanConfig:
    """Load configuration for a command, exiting with status 2 if invalid."""
    obj = ctx.obj or {}
    try:
        config = ReposcanConfig.load(obj.get("config_path"))
    except ConfigError as e:
        Console(stderr=True).print(f"[red]Invalid configuration:[/red] {e}")
        raise SystemExit(2)
    config.verbose = bool(obj.get("verbose"))
    return config


def _register_commands() -> None:
    from reposcan.cli.purge import purge  # noqa: F811
    from reposcan.cli.scan import scan  # noqa: F811
    from reposcan.cli.server import server  # noqa: F811
    from reposcan.cli.tools import tools  # noqa: F811

    main.add_command(scan)
    main.add_command(server)
    main.add_command(purge)
    main.add_command(tools)


_register_commands()
