# SPDX-License-Identifier: MPL-2.0
"""
CLI command implementations for key management and receipt building.
"""

import json
import sys
from typing import Any, Mapping, Optional

import click

from receipt_ledger.core.config import PRIVATE_KEY_ENV, PUBLIC_KEY_ENV, Settings
from receipt_ledger.core.crypto import KeyManager, KeyPair, KeySource
from receipt_ledger.core.exceptions import KeyManagerError, ValidationError
from receipt_ledger.core.models import EventDescriptor
from receipt_ledger.core.receipt import ReceiptBuilder


# Helper functions
def load_json(file_path: str) -> Any:
    """Load a JSON document from a file, exiting on error."""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        click.echo(f"Error loading {file_path}: {e}", err=True)
        sys.exit(1)


def write_output(text: str, output: Optional[str]) -> None:
    """Write ``text`` to ``output`` or stdout."""
    if output:
        try:
            with open(output, "w", encoding="utf-8") as f:
                f.write(text + "\n")
        except OSError as e:
            click.echo(f"Error writing {output}: {e}", err=True)
            sys.exit(1)
        click.echo(f"Written to {output}", err=True)
    else:
        click.echo(text)


def load_key_pair(settings: Settings) -> KeyPair:
    """Load the configured signing key, exiting on configuration errors."""
    try:
        key_pair = KeyManager.from_settings(settings).load_or_generate()
    except KeyManagerError as e:
        click.echo(f"Error loading receipt keys: {e.message}", err=True)
        sys.exit(1)
    if key_pair.ephemeral:
        click.echo(
            "Warning: no receipt keys configured, signing with an ephemeral key", err=True
        )
    return key_pair


# Key management commands
@click.group()
def keys() -> None:
    """Manage receipt signing keys."""


@keys.command("generate")
@click.option(
    "--format", "fmt", type=click.Choice(["env", "json"]), default="env",
    help="Output format",
)
def generate_keys(fmt: str) -> None:
    """Generate a new Ed25519 key pair for receipt signing."""
    key_pair = KeyPair.generate(KeySource.ENVIRONMENT)
    private_pem = key_pair.private_pem()
    if fmt == "json":
        click.echo(
            json.dumps(
                {
                    PRIVATE_KEY_ENV: private_pem,
                    PUBLIC_KEY_ENV: key_pair.public_key_b64u,
                },
                indent=2,
            )
        )
    else:
        escaped = private_pem.strip().replace("\n", "\\n")
        click.echo(f'{PRIVATE_KEY_ENV}="{escaped}"')
        click.echo(f'{PUBLIC_KEY_ENV}="{key_pair.public_key_b64u}"')


@keys.command("public")
def show_public_key() -> None:
    """Print the public key of the configured signing key."""
    key_pair = load_key_pair(Settings.from_env())
    click.echo(key_pair.public_key_b64u)


# Receipt commands
@click.command("build")
@click.argument("event_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--prev-hash", "-p", default=None, help="Entry hash of the previous receipt")
@click.option("--unsigned", is_flag=True, help="Build chain-only receipts without a signature")
@click.option("--policy-id", default=None, help="Policy id stamped on the receipt")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file (default: stdout)")
def build(
    event_file: str,
    prev_hash: Optional[str],
    unsigned: bool,
    policy_id: Optional[str],
    output: Optional[str],
) -> None:
    """Build receipts for the event (or list of events) in EVENT_FILE.

    A list of events is built as one chain, starting from --prev-hash.
    """
    settings = Settings.from_env()
    data = load_json(event_file)
    items = data if isinstance(data, list) else [data]
    if not all(isinstance(item, Mapping) for item in items):
        click.echo("Error: expected a JSON event object or a list of event objects", err=True)
        sys.exit(2)

    key_pair = None if unsigned else load_key_pair(settings)
    try:
        builder = ReceiptBuilder(
            key_pair,
            policy_id=policy_id or settings.policy_id,
            allow_ephemeral=settings.allow_ephemeral_keys,
        )
        if isinstance(data, list):
            events = [EventDescriptor.from_dict(item) for item in data]
            receipts = builder.build_chain(events, prev_hash=prev_hash)
            text = json.dumps([r.to_dict() for r in receipts], indent=2)
        else:
            receipt = builder.build(EventDescriptor.from_dict(data), prev_hash=prev_hash)
            text = receipt.to_json()
    except (KeyManagerError, ValidationError) as e:
        click.echo(f"Error building receipt: {e.message}", err=True)
        sys.exit(1)
    except TypeError as e:
        click.echo(f"Error building receipt: invalid event: {e}", err=True)
        sys.exit(1)

    write_output(text, output)
