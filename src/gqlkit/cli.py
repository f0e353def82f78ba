#!/usr/bin/env python3
"""
Command line entry point for gqlkit.
"""

import sys

import click
import uvicorn

from . import __version__
from .config import settings
from .logging import configure_logging, get_logger
from .versions import REQUIRED_VERSIONS, check_package_versions

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="gqlkit")
def cli() -> None:
    """gqlkit CLI - check dependencies and run a GraphQL server."""
    pass


@cli.command("check-versions")
def check_versions() -> None:
    """Check installed dependencies against the supported version ranges."""
    mismatches = check_package_versions(REQUIRED_VERSIONS)

    if not mismatches:
        click.echo(f"All {len(REQUIRED_VERSIONS)} dependencies satisfy their ranges.")
        return

    click.echo("Incompatible package versions:", err=True)
    for mismatch in mismatches:
        click.echo(f"  - {mismatch}", err=True)
    sys.exit(1)


@cli.command()
@click.argument("app")
@click.option("--host", default=None, help="Host to bind to (default: settings.api_host)")
@click.option("--port", default=None, type=int, help="Port to bind to (default: settings.api_port)")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Log level (default: info)",
)
def serve(app: str, host: str | None, port: int | None, reload: bool, log_level: str) -> None:
    """Serve APP, an import string such as ``myproject.main:app``."""
    if ":" not in app:
        raise click.BadParameter(
            "Expected an import string of the form module:attribute", param_hint="APP"
        )

    configure_logging(debug=(log_level == "debug"))
    host = host or settings.api_host
    port = port or settings.api_port

    logger.info("Starting GraphQL server", app=app, host=host, port=port, reload=reload)

    uvicorn.run(app, host=host, port=port, reload=reload, log_level=log_level)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
