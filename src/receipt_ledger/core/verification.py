# SPDX-License-Identifier: MPL-2.0
"""
Verification Module for the Receipt Ledger

Re-derives the digests and signature of a receipt and reports every check
independently. A receipt that fails verification is a normal outcome and is
returned as a :class:`VerificationResult`; only structurally unrecognisable
input raises :class:`MalformedReceiptError`.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Union

from receipt_ledger.core.canonicalization import CanonicalizationError, canonicalize
from receipt_ledger.core.crypto import chain_digest, check_signature, sha256_hex
from receipt_ledger.core.exceptions import MalformedReceiptError
from receipt_ledger.core.models import (
    ChainReceipt,
    Check,
    CheckStatus,
    Receipt,
    ReceiptType,
    SignedReceipt,
    VerificationResult,
    VerificationWarning,
    parse_timestamp,
    receipt_from_dict,
)

logger = logging.getLogger(__name__)

RECOMMENDED_PAYLOAD_FIELDS = ("event_id", "session_id", "timestamp")

# Payload fields that must agree with the receipt's top-level hash fields
LINKED_PAYLOAD_FIELDS = ("inputs_hash", "outputs_hash", "prev_hash")

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def expected_entry_hash(receipt: Receipt) -> str:
    """Recompute the entry hash of ``receipt`` by the rule of its shape."""
    if isinstance(receipt, SignedReceipt):
        return _payload_hash(receipt.payload)[0]
    return chain_digest(receipt.prev_hash, receipt.inputs_hash, receipt.outputs_hash)


def _payload_hash(payload: str) -> tuple[str, Any]:
    """Digest of the re-canonicalised payload and the parsed payload.

    A payload that is not valid JSON is digested as-is and returned with
    ``None`` in place of the parsed value.
    """
    try:
        parsed = json.loads(payload)
        return sha256_hex(canonicalize(parsed)), parsed
    except (ValueError, CanonicalizationError):
        return sha256_hex(payload), None


class ReceiptVerifier:
    """Verifies signed and chain-only receipts.

    The verifier holds no state; one instance can be shared between threads.
    """

    def verify(self, receipt: Union[Receipt, Mapping[str, Any]]) -> VerificationResult:
        """Verify a receipt value or its wire mapping.

        Raises:
            MalformedReceiptError: a mapping matches neither receipt shape.
        """
        if not isinstance(receipt, (SignedReceipt, ChainReceipt)):
            receipt = receipt_from_dict(receipt)

        if isinstance(receipt, SignedReceipt):
            result = self._verify_signed(receipt)
        else:
            result = self._verify_chain(receipt)

        self._check_common_fields(receipt, result)

        if not result.valid:
            logger.debug(
                f"Receipt {receipt.entry_hash} failed verification: "
                f"{[c.field for c in result.failures]}"
            )
        return result

    def verify_json(self, data: Union[str, bytes]) -> VerificationResult:
        """Verify a receipt given as JSON text.

        Raises:
            MalformedReceiptError: the text is not a JSON receipt.
        """
        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            parsed = json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedReceiptError(f"Invalid receipt format: {e}") from e
        return self.verify(parsed)

    def _verify_signed(self, receipt: SignedReceipt) -> VerificationResult:
        result = VerificationResult(receipt_type=ReceiptType.SIGNED)

        payload_hash, parsed = _payload_hash(receipt.payload)
        if parsed is None:
            result.checks.append(
                Check("payload", CheckStatus.INVALID, "Payload is not valid canonical JSON")
            )

        if payload_hash == receipt.entry_hash:
            result.checks.append(
                Check("entry_hash", CheckStatus.VALID, "Entry hash matches payload")
            )
        else:
            result.checks.append(
                Check(
                    "entry_hash",
                    CheckStatus.MISMATCH,
                    "Entry hash does not match payload hash",
                    expected=payload_hash,
                    actual=receipt.entry_hash,
                )
            )

        if isinstance(parsed, dict):
            self._check_payload_links(receipt, parsed, result)

        ok, reason = check_signature(receipt.entry_hash, receipt.signature, receipt.public_key)
        if ok:
            result.checks.append(
                Check("signature", CheckStatus.VALID, "Ed25519 signature verified")
            )
        else:
            result.checks.append(
                Check(
                    "signature",
                    CheckStatus.INVALID,
                    f"Ed25519 signature verification failed: {reason}",
                )
            )

        if isinstance(parsed, dict):
            self._check_payload_structure(parsed, result)
        elif parsed is not None:
            result.warnings.append(
                VerificationWarning("payload", "Could not validate payload structure")
            )
        return result

    @staticmethod
    def _check_payload_links(
        receipt: SignedReceipt, payload: dict[str, Any], result: VerificationResult
    ) -> None:
        for name in LINKED_PAYLOAD_FIELDS:
            if name not in payload:
                continue
            expected = payload[name] or None
            actual = getattr(receipt, name)
            if expected == actual:
                result.checks.append(
                    Check(name, CheckStatus.VALID, f"{name} matches payload")
                )
            else:
                result.checks.append(
                    Check(
                        name,
                        CheckStatus.MISMATCH,
                        f"{name} does not match the value committed in the payload",
                        expected=expected,
                        actual=actual,
                    )
                )

    @staticmethod
    def _check_payload_structure(payload: dict[str, Any], result: VerificationResult) -> None:
        for name in RECOMMENDED_PAYLOAD_FIELDS:
            if not payload.get(name):
                result.warnings.append(
                    VerificationWarning("payload", f"Recommended field missing: {name}")
                )

        event_id = payload.get("event_id")
        if event_id and not (isinstance(event_id, str) and UUID_RE.match(event_id)):
            result.warnings.append(VerificationWarning("payload", "event_id should be a UUID"))

    def _verify_chain(self, receipt: ChainReceipt) -> VerificationResult:
        result = VerificationResult(receipt_type=ReceiptType.HASH_CHAIN)

        expected = chain_digest(receipt.prev_hash, receipt.inputs_hash, receipt.outputs_hash)
        if expected == receipt.entry_hash:
            result.checks.append(
                Check("entry_hash", CheckStatus.VALID, "Hash chain verified")
            )
        else:
            result.checks.append(
                Check(
                    "entry_hash",
                    CheckStatus.MISMATCH,
                    "Entry hash does not match recomputed hash",
                    expected=expected,
                    actual=receipt.entry_hash,
                    components={
                        "prev_hash": receipt.prev_hash,
                        "inputs_hash": receipt.inputs_hash,
                        "outputs_hash": receipt.outputs_hash,
                    },
                )
            )
        return result

    @staticmethod
    def _check_common_fields(receipt: Receipt, result: VerificationResult) -> None:
        created_at = receipt.created_at
        if created_at is not None:
            try:
                parse_timestamp(str(created_at))
            except ValueError:
                result.warnings.append(
                    VerificationWarning("created_at", "Invalid timestamp format")
                )

        if not isinstance(receipt.policy_id, str):
            result.warnings.append(
                VerificationWarning("policy_id", "policy_id should be a string")
            )


def verify_receipt(receipt: Union[Receipt, Mapping[str, Any]]) -> VerificationResult:
    """Convenience wrapper around :meth:`ReceiptVerifier.verify`."""
    return ReceiptVerifier().verify(receipt)
