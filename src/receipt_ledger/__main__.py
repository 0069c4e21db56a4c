# SPDX-License-Identifier: MPL-2.0
"""
Receipt Ledger - Main entry point for the CLI.

This module provides the command-line interface for the Receipt Ledger package.
"""

from receipt_ledger.cli.main import cli

if __name__ == "__main__":
    cli()
