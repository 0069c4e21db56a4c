# SPDX-License-Identifier: MPL-2.0
"""Core functionality for the Receipt Ledger."""
from receipt_ledger.core.canonicalization import canonicalize
from receipt_ledger.core.chain import SessionChainAuditor, audit_chain
from receipt_ledger.core.crypto import (
    KeyManager,
    KeyPair,
    KeySource,
    chain_digest,
    payload_digest,
    sha256_hex,
    verify_signature,
)
from receipt_ledger.core.models import (
    AuditResult,
    ChainReceipt,
    EventDescriptor,
    Receipt,
    SignedReceipt,
    VerificationResult,
    receipt_from_dict,
)
from receipt_ledger.core.receipt import ReceiptBuilder, create_receipt
from receipt_ledger.core.verification import ReceiptVerifier, verify_receipt

__all__ = [
    "canonicalize",
    "sha256_hex",
    "payload_digest",
    "chain_digest",
    "KeyPair",
    "KeySource",
    "KeyManager",
    "verify_signature",
    "Receipt",
    "SignedReceipt",
    "ChainReceipt",
    "EventDescriptor",
    "receipt_from_dict",
    "VerificationResult",
    "AuditResult",
    "ReceiptBuilder",
    "create_receipt",
    "ReceiptVerifier",
    "verify_receipt",
    "SessionChainAuditor",
    "audit_chain",
]
