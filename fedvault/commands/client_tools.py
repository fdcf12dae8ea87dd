"""Client-side helpers for preparing uploads by hand."""

from __future__ import annotations

import json
import sys
from typing import Optional

import click


def register(cli: click.Group) -> None:
    cli.add_command(encrypt_update)
    cli.add_command(fixed_point)


def _read_vector(vector_json: Optional[str]) -> list[float]:
    raw = vector_json if vector_json is not None else sys.stdin.read()
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}") from None
    if not isinstance(values, list) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in values
    ):
        raise click.BadParameter("expected a JSON array of numbers")
    return [float(v) for v in values]


@click.command("encrypt-update")
@click.argument("vector_json", required=False)
@click.option("--key", "key_hex", required=True, help="Hex-encoded 32-byte key from /v1/keys/derive.")
def encrypt_update(vector_json: Optional[str], key_hex: str) -> None:
    """Encrypt a model update and print the hex upload envelope.

    VECTOR_JSON is a JSON array of floats; read from stdin when omitted.

    Example:

        fedvault encrypt-update --key 00ff... '[0.1, -0.2]'
    """
    from fedvault.codec import encrypt_update as _encrypt
    from fedvault.errors import InvalidKeyMaterial

    values = _read_vector(vector_json)
    try:
        key = bytes.fromhex(key_hex)
    except ValueError:
        raise click.BadParameter("key must be hex", param_hint="--key") from None
    try:
        envelope = _encrypt(values, key)
    except InvalidKeyMaterial as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    click.echo(envelope.hex())


@click.command("fixed-point")
@click.argument("vector_json", required=False)
def fixed_point(vector_json: Optional[str]) -> None:
    """Print a float vector in the SMPC fixed-point encoding (scale 1e6).

    Example:

        fedvault fixed-point '[0.5, -0.2]'
    """
    from fedvault.codec import to_fixed_point

    click.echo(json.dumps(to_fixed_point(_read_vector(vector_json))))
