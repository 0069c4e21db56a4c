# SPDX-License-Identifier: MPL-2.0
"""Replay and audit of session hash chains."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from receipt_ledger.core.models import AuditResult, ChainEntryResult, Receipt, SignedReceipt
from receipt_ledger.core.verification import ReceiptVerifier, expected_entry_hash

logger = logging.getLogger(__name__)

# Verifier checks whose failure breaks the chain at that position
INTEGRITY_CHECKS = ("payload", "entry_hash", "inputs_hash", "outputs_hash", "prev_hash")


class SessionChainAuditor:
    """Walks an ordered session chain once and reports the first break.

    The input must already be in session order (creation time). For entry
    ``i`` the auditor checks that ``prev_hash`` equals the previous
    ``entry_hash`` (``None`` for the first entry) and runs the single receipt
    verifier over the entry. For signed entries this includes the hash fields
    committed inside the payload, so an entry relinked over a deleted
    neighbour is caught even when its top-level ``prev_hash`` was rewritten.

    The first link or integrity failure sets ``break_at`` and ends the walk:
    positions after a break cannot be trusted even if they are individually
    well formed. A bad signature makes the chain invalid but does not stop
    the walk, since linkage is intact.

    Args:
        verifier: Verifier applied to every entry; a fresh
            :class:`ReceiptVerifier` by default.
    """

    def __init__(self, verifier: Optional[ReceiptVerifier] = None) -> None:
        self.verifier = verifier or ReceiptVerifier()

    def audit(
        self,
        receipts: Sequence[Receipt],
        event_ids: Optional[Sequence[Optional[str]]] = None,
    ) -> AuditResult:
        """Audit ``receipts``.

        Args:
            receipts: Receipts of one session, in order.
            event_ids: Optional event identifiers echoed per entry.
        """
        entries: list[ChainEntryResult] = []
        break_at: Optional[int] = None
        expected_prev: Optional[str] = None

        for index, receipt in enumerate(receipts):
            actual_prev = receipt.prev_hash or None
            link_valid = actual_prev == expected_prev

            result = self.verifier.verify(receipt)
            broken = [c for c in result.failures if c.field in INTEGRITY_CHECKS]
            hash_valid = not broken

            signature_valid: Optional[bool] = None
            message: Optional[str] = None
            if isinstance(receipt, SignedReceipt):
                signature = result.check("signature")
                signature_valid = signature is not None and signature.passed
                if not signature_valid and signature is not None:
                    message = signature.message

            if not link_valid:
                message = "prev_hash does not match the previous entry hash"
            elif not hash_valid:
                message = "; ".join(c.message for c in broken)

            entries.append(
                ChainEntryResult(
                    index=index,
                    entry_hash=receipt.entry_hash,
                    expected_prev=expected_prev,
                    actual_prev=actual_prev,
                    expected_hash=expected_entry_hash(receipt),
                    link_valid=link_valid,
                    hash_valid=hash_valid,
                    signature_valid=signature_valid,
                    event_id=event_ids[index] if event_ids is not None else None,
                    message=message,
                )
            )

            if not (link_valid and hash_valid):
                break_at = index
                logger.info(f"Session chain broken at index {index}: {message}")
                break

            expected_prev = receipt.entry_hash

        return AuditResult(entries=entries, total=len(receipts), break_at=break_at)


def audit_chain(receipts: Sequence[Receipt]) -> AuditResult:
    """Convenience wrapper around :meth:`SessionChainAuditor.audit`."""
    return SessionChainAuditor().audit(receipts)
