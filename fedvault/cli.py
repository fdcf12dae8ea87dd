"""
fedvault command-line interface.

Usage::

    fedvault serve --port 8090
    fedvault serve --key-service-url https://kds.internal --mode smpc
    fedvault encrypt-update --key <64 hex chars> '[0.1, -0.2, 0.3]'
    fedvault fixed-point '[0.5, -0.2]'
"""

from __future__ import annotations

import click

from fedvault import __version__


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="fedvault")
def main() -> None:
    """fedvault: privacy-preserving aggregation for federated learning."""


# ---------------------------------------------------------------------------
# Register command modules
# ---------------------------------------------------------------------------

from fedvault.commands import client_tools, serve  # noqa: E402

for _mod in [serve, client_tools]:
    _mod.register(main)
