# SPDX-License-Identifier: MPL-2.0
"""Main CLI entry point."""
import logging

import click

from receipt_ledger.cli.commands import build, keys
from receipt_ledger.cli.verify import verify


@click.group()  # type: ignore[misc]
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Receipt Ledger CLI."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@cli.command()  # type: ignore[misc]
def version() -> None:
    """Show version information."""
    from receipt_ledger import __version__

    click.echo(f"Receipt Ledger v{__version__}")


cli.add_command(keys)
cli.add_command(build)
cli.add_command(verify)


if __name__ == "__main__":
    cli()
