# SPDX-License-Identifier: MPL-2.0
"""
Receipt Ledger - Tamper-evident receipts for AI interactions.

This package builds signed or hash-chained receipts for individual events,
verifies them, and audits whole session chains for alteration, reordering or
deletion.
"""

import contextlib
from importlib.metadata import version

# Set up version
__version__ = "0.1.0"

with contextlib.suppress(Exception):
    __version__ = version("receipt-ledger")


# Core components
from receipt_ledger.core import (
    KeyManager,
    ReceiptBuilder,
    ReceiptVerifier,
    SessionChainAuditor,
    audit_chain,
    canonicalize,
    create_receipt,
    verify_receipt,
)

# Public API
__all__ = [
    "canonicalize",
    "KeyManager",
    "ReceiptBuilder",
    "ReceiptVerifier",
    "SessionChainAuditor",
    "create_receipt",
    "verify_receipt",
    "audit_chain",
    "__version__",
]
