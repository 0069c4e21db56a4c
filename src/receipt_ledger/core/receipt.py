# SPDX-License-Identifier: MPL-2.0
"""Receipt creation."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from receipt_ledger.core.canonicalization import canonicalize
from receipt_ledger.core.config import DEFAULT_POLICY_ID
from receipt_ledger.core.crypto import KeyPair, chain_digest, sha256_hex
from receipt_ledger.core.exceptions import EphemeralKeyError, ValidationError
from receipt_ledger.core.models import ChainReceipt, EventDescriptor, Receipt, SignedReceipt

logger = logging.getLogger(__name__)

TRUST_VERSION = "1.0"

COMPLIANCE_FLAGS: dict[str, bool] = {
    "consent_architecture": True,
    "inspection_mandate": True,
    "continuous_validation": True,
    "ethical_override": False,
    "right_to_disconnect": True,
    "moral_recognition": True,
}

REQUIRED_EVENT_FIELDS = ("event_id", "session_id", "prompt", "response")


def validate_event(event: EventDescriptor) -> None:
    """Raise :class:`ValidationError` unless the required event fields are set."""
    missing = [name for name in REQUIRED_EVENT_FIELDS if not getattr(event, name)]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}", {"missing": missing}
        )


def build_payload(event: EventDescriptor, prev_hash: Optional[str] = None) -> dict[str, Any]:
    """Descriptive payload of ``event``.

    The payload carries the input/output digests and the prior entry hash so
    that tampering with any of the receipt's hash fields is detectable even
    for signed receipts.
    """
    return {
        "event_id": event.event_id,
        "session_id": event.session_id,
        "user_id": event.user_id,
        "model_vendor": event.model_vendor,
        "model_name": event.model_name,
        "timestamp": event.timestamp,
        "prompt_length": len(event.prompt),
        "response_length": len(event.response),
        "inputs_hash": sha256_hex(event.prompt),
        "outputs_hash": sha256_hex(event.response),
        "prev_hash": prev_hash,
        "metadata": dict(event.metadata or {}),
        "trust_version": TRUST_VERSION,
        "compliance": dict(COMPLIANCE_FLAGS),
    }


class ReceiptBuilder:
    """Produces receipts for events.

    With a key pair the builder emits :class:`SignedReceipt` values whose
    entry hash is the digest of the canonical payload. Without one it emits
    :class:`ChainReceipt` values linked only by hash.

    Args:
        key_pair: Signing key, or ``None`` for chain-only receipts.
        policy_id: Default ``policy_id`` stamped on receipts.
        allow_ephemeral: Must be ``True`` to sign with an ephemeral key.

    Raises:
        EphemeralKeyError: ``key_pair`` is ephemeral and ``allow_ephemeral``
            is false.
    """

    def __init__(
        self,
        key_pair: Optional[KeyPair] = None,
        policy_id: str = DEFAULT_POLICY_ID,
        allow_ephemeral: bool = False,
    ) -> None:
        if key_pair is not None and key_pair.ephemeral and not allow_ephemeral:
            raise EphemeralKeyError(
                "Refusing to sign with an ephemeral key pair; "
                "configure receipt keys or pass allow_ephemeral=True"
            )
        self.key_pair = key_pair
        self.policy_id = policy_id

    @property
    def signing(self) -> bool:
        return self.key_pair is not None

    def build(
        self,
        event: EventDescriptor,
        prev_hash: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> Receipt:
        """Build the receipt for ``event``, linked to ``prev_hash``.

        Args:
            event: The event to attest.
            prev_hash: ``entry_hash`` of the previous receipt in the session,
                or ``None`` for the first receipt of a chain.
            policy_id: Overrides the builder's default ``policy_id``.

        Raises:
            ValidationError: a required event field is empty.
        """
        validate_event(event)

        prev_hash = prev_hash or None
        inputs_hash = sha256_hex(event.prompt)
        outputs_hash = sha256_hex(event.response)
        policy = policy_id or self.policy_id

        if self.key_pair is None:
            return ChainReceipt(
                inputs_hash=inputs_hash,
                outputs_hash=outputs_hash,
                prev_hash=prev_hash,
                entry_hash=chain_digest(prev_hash, inputs_hash, outputs_hash),
                policy_id=policy,
                created_at=event.timestamp,
            )

        payload = canonicalize(build_payload(event, prev_hash))
        entry_hash = sha256_hex(payload)
        return SignedReceipt(
            payload=payload,
            inputs_hash=inputs_hash,
            outputs_hash=outputs_hash,
            prev_hash=prev_hash,
            entry_hash=entry_hash,
            signature=self.key_pair.sign(entry_hash),
            public_key=self.key_pair.public_key_b64u,
            policy_id=policy,
            created_at=event.timestamp,
        )

    def build_chain(
        self,
        events: Iterable[EventDescriptor],
        prev_hash: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> list[Receipt]:
        """Build receipts for ``events`` in order, each linked to the last."""
        receipts: list[Receipt] = []
        for event in events:
            receipt = self.build(event, prev_hash=prev_hash, policy_id=policy_id)
            receipts.append(receipt)
            prev_hash = receipt.entry_hash
        logger.debug(f"Built chain of {len(receipts)} receipts")
        return receipts


def create_receipt(
    event: EventDescriptor,
    key_pair: Optional[KeyPair] = None,
    prev_hash: Optional[str] = None,
    policy_id: str = DEFAULT_POLICY_ID,
) -> Receipt:
    """Build a single receipt; ephemeral keys are accepted."""
    return ReceiptBuilder(key_pair, policy_id=policy_id, allow_ephemeral=True).build(
        event, prev_hash=prev_hash
    )
