"""Serve command: run the aggregation HTTP service."""

from __future__ import annotations

from typing import Optional

import click


def register(cli: click.Group) -> None:
    cli.add_command(serve)


@click.command()
@click.option("--port", "-p", default=8090, help="Port to listen on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option(
    "--key-service-url",
    default=None,
    help="Base URL of the key derivation service. "
    "Default: FEDVAULT_KEY_SERVICE_URL, or in-process HKDF derivation when unset.",
)
@click.option(
    "--mode",
    default=None,
    type=click.Choice(["plain", "smpc"], case_sensitive=False),
    help="Initial aggregation mode (informational only).",
)
@click.option(
    "--skip-undecodable",
    is_flag=True,
    default=False,
    help="Skip updates whose plaintext does not decode instead of aborting "
    "the whole aggregation pass.",
)
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["critical", "error", "warning", "info", "debug"]),
    help="Server log level (default: info).",
)
def serve(
    port: int,
    host: str,
    key_service_url: Optional[str],
    mode: Optional[str],
    skip_undecodable: bool,
    log_level: str,
) -> None:
    """Start the aggregation server.

    \b
        fedvault serve
        fedvault serve --key-service-url https://kds.internal --port 9000

    Without a key service URL, keys are derived in-process from
    FEDVAULT_MASTER_SECRET (random per process when unset), which is only
    suitable for development.
    """
    from fedvault.config import Settings
    from fedvault.server import run_server

    settings = Settings.load(
        key_service_url=key_service_url,
        default_mode=mode.upper() if mode else None,
        abort_on_undecodable_update=False if skip_undecodable else None,
    )
    click.echo(f"Starting fedvault on http://{host}:{port}")
    if not settings.key_service_url:
        click.echo("Warning: no key service configured, using in-process key derivation.", err=True)
    run_server(host=host, port=port, settings=settings, log_level=log_level)
