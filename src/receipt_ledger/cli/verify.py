# SPDX-License-Identifier: MPL-2.0
"""
CLI Commands for Verifying Receipts

This module provides the command-line interface for verifying single receipts
and auditing session chains.
"""

import sys
from typing import Any

import click

from receipt_ledger.cli.commands import load_json
from receipt_ledger.core.chain import SessionChainAuditor
from receipt_ledger.core.exceptions import MalformedReceiptError
from receipt_ledger.core.models import receipt_from_dict
from receipt_ledger.core.verification import ReceiptVerifier


# Click command group
@click.group()
def verify() -> None:
    """Verify receipts and session chains."""


@verify.command()
@click.argument("receipt_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o", type=click.Choice(["text", "json", "compact"]),
    default="text", help="Output format",
)
def receipt(receipt_file: str, output: str) -> None:
    """Verify a receipt file."""
    data = load_json(receipt_file)
    if isinstance(data, dict) and isinstance(data.get("receipt"), dict):
        data = data["receipt"]

    try:
        parsed = receipt_from_dict(data)
        result = ReceiptVerifier().verify(parsed)
    except MalformedReceiptError as e:
        click.echo(f"Error: {e.message} {e.details or ''}".rstrip(), err=True)
        sys.exit(2)

    if output == "json":
        click.echo(result.to_json())
    elif output == "text":
        click.echo(f"Receipt: {receipt_file}")
        click.echo(f"Type: {result.receipt_type.value}")
        click.echo(f"Status: {'✓ VALID' if result.valid else '✗ INVALID'}")

        click.echo("\nChecks:")
        for check in result.checks:
            mark = "✓" if check.passed else "✗"
            click.echo(f"  {mark} {check.field}: {check.message}")
            if check.expected is not None or check.actual is not None:
                click.echo(f"      expected: {check.expected}")
                click.echo(f"      actual:   {check.actual}")

        if result.warnings:
            click.echo("\nWarnings:")
            for warning in result.warnings:
                click.echo(f"  ⚠ {warning.field}: {warning.message}")
    else:  # compact
        status = "VALID" if result.valid else "INVALID"
        failures = result.failures
        if failures:
            status += f" ({len(failures)} failed checks)"
        if result.warnings:
            status += f" ({len(result.warnings)} warnings)"
        click.echo(f"{parsed.entry_hash}: {status}")

    sys.exit(0 if result.valid else 1)


def _load_receipts(data: Any) -> list[Any]:
    if isinstance(data, dict) and isinstance(data.get("receipts"), list):
        data = data["receipts"]
    if not isinstance(data, list):
        click.echo("Error: expected a JSON list of receipts", err=True)
        sys.exit(2)
    try:
        return [receipt_from_dict(item) for item in data]
    except MalformedReceiptError as e:
        click.echo(f"Error: {e.message} {e.details or ''}".rstrip(), err=True)
        sys.exit(2)


@verify.command()
@click.argument("receipts_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o", type=click.Choice(["text", "json"]),
    default="text", help="Output format",
)
def chain(receipts_file: str, output: str) -> None:
    """Audit a session chain given as an ordered JSON list of receipts."""
    receipts = _load_receipts(load_json(receipts_file))
    result = SessionChainAuditor().audit(receipts)

    if output == "json":
        click.echo(result.to_json())
    else:
        summary = result.summary
        click.echo(f"Chain: {receipts_file}")
        click.echo(f"Status: {'✓ VALID' if result.valid else '✗ INVALID'}")
        click.echo(f"Entries: {summary.checked}/{summary.total} checked")
        click.echo(
            f"Signatures: {summary.signatures_valid} valid, "
            f"{summary.signatures_invalid} invalid, "
            f"{summary.signatures_unchecked} unchecked"
        )
        if result.break_at is not None:
            entry = result.entries[result.break_at]
            click.echo(f"\nBreak at index {result.break_at}: {entry.message}")
            click.echo(f"  expected prev: {entry.expected_prev}")
            click.echo(f"  actual prev:   {entry.actual_prev}")

    sys.exit(0 if result.valid else 1)
