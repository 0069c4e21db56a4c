# SPDX-License-Identifier: MPL-2.0
"""Ledger service.

Ties the key manager, receipt builder, verifier and chain auditor to an
event store. This is the layer the HTTP API and the CLI talk to.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from receipt_ledger.core.canonicalization import canonicalize
from receipt_ledger.core.chain import SessionChainAuditor
from receipt_ledger.core.config import Settings
from receipt_ledger.core.crypto import KeyManager, sha256_hex
from receipt_ledger.core.exceptions import EventNotFoundError, KeyManagerError, ValidationError
from receipt_ledger.core.models import (
    AuditResult,
    ChainReceipt,
    EventDescriptor,
    EventVerification,
    LedgerLink,
    Receipt,
    SignedReceipt,
    StoredEvent,
    VerificationResult,
    parse_timestamp,
)
from receipt_ledger.core.receipt import ReceiptBuilder, build_payload
from receipt_ledger.core.verification import ReceiptVerifier
from receipt_ledger.services.event_store import EventStore, InMemoryEventStore

logger = logging.getLogger(__name__)

DEMO_POLICY_ID = "demo.receipt.v1"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LedgerService:
    """Builds, records and verifies receipts for one process.

    Args:
        key_manager: Signing key owner. ``None`` produces chain-only receipts.
        event_store: Source of stored events; defaults to an in-memory store.
        settings: Runtime settings; defaults to :meth:`Settings.from_env`.
    """

    def __init__(
        self,
        key_manager: Optional[KeyManager] = None,
        event_store: Optional[EventStore] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.key_manager = key_manager
        self.event_store: EventStore = event_store if event_store is not None else InMemoryEventStore()
        self.verifier = ReceiptVerifier()
        self.auditor = SessionChainAuditor()
        self._builder: Optional[ReceiptBuilder] = None
        # Serialises head lookup, build and store for record()
        self._record_lock = threading.Lock()

    @property
    def builder(self) -> ReceiptBuilder:
        """Receipt builder bound to the managed key.

        Raises:
            KeyManagerError: the signing key could not be initialised.
        """
        if self._builder is None:
            key_pair = self.key_manager.load_or_generate() if self.key_manager else None
            self._builder = ReceiptBuilder(
                key_pair,
                policy_id=self.settings.policy_id,
                allow_ephemeral=self.settings.allow_ephemeral_keys,
            )
        return self._builder

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def status(self) -> dict[str, Any]:
        """Describe the signing capability of this service."""
        error: Optional[str] = None
        key_pair = None
        if self.key_manager is not None:
            try:
                key_pair = self.key_manager.load_or_generate()
            except KeyManagerError as exc:
                error = exc.message

        return {
            "initialized": key_pair is not None or self.key_manager is None,
            "can_sign": key_pair is not None
            and (not key_pair.ephemeral or self.settings.allow_ephemeral_keys),
            "can_verify": True,
            "key_source": key_pair.source.value if key_pair is not None else None,
            "ephemeral": key_pair.ephemeral if key_pair is not None else False,
            "mode": "production" if self.key_manager is not None and self.key_manager.configured else "development",
            "environment": self.settings.environment,
            "error": error,
        }

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    def generate_receipt(
        self,
        event: EventDescriptor,
        prev_hash: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> Receipt:
        return self.builder.build(event, prev_hash=prev_hash, policy_id=policy_id)

    def generate_batch(
        self,
        events: Iterable[EventDescriptor],
        prev_hash: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> list[Receipt]:
        """Receipts for ``events``, each chained to the previous one."""
        return self.builder.build_chain(events, prev_hash=prev_hash, policy_id=policy_id)

    def generate_demo_receipt(
        self,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        prompt: Optional[str] = None,
        response: Optional[str] = None,
        compliance_score: Optional[float] = None,
        prev_hash: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> Receipt:
        """Receipt for a synthetic interaction, for demos and smoke tests."""
        event = EventDescriptor(
            event_id=str(uuid.uuid4()),
            session_id=session_id or f"demo-session-{int(time.time() * 1000)}",
            user_id=user_id or "demo-user",
            prompt=prompt or "This is a demo prompt for trust receipt verification.",
            response=response
            or "This is a demo response demonstrating cryptographic audit trails.",
            metadata={
                "demo": True,
                "purpose": "trust_receipt_verification",
                "compliance_score": compliance_score if compliance_score is not None else 0.98,
            },
            model_vendor="demo",
            model_name="demo-model",
            timestamp=_now_iso(),
        )
        return self.generate_receipt(event, prev_hash=prev_hash, policy_id=policy_id or DEMO_POLICY_ID)

    def record(self, event: EventDescriptor, policy_id: Optional[str] = None) -> Receipt:
        """Build the next receipt of ``event``'s session and store the event.

        Head lookup, build and store run under one lock, so concurrent
        records into a session extend a single chain.

        Raises:
            ValidationError: the event timestamp is not ISO 8601 or is
                earlier than the session head.
        """
        try:
            recorded_at = parse_timestamp(event.timestamp)
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError(
                f"Invalid event timestamp: {event.timestamp!r}", {"event_id": event.event_id}
            ) from e

        with self._record_lock:
            session = self._ordered_session(event.session_id)
            head = session[-1] if session else None
            if head is not None and recorded_at < _parsed_or(head.timestamp, recorded_at):
                raise ValidationError(
                    "Event timestamp is earlier than the session head",
                    {"event_id": event.event_id, "head_event_id": head.event_id},
                )
            prev_hash = head.ledger.row_hash if head is not None else None

            receipt = self.generate_receipt(event, prev_hash=prev_hash, policy_id=policy_id)
            signed = isinstance(receipt, SignedReceipt)
            self.event_store.add(
                StoredEvent(
                    event=event,
                    ledger=LedgerLink(
                        prev_hash=prev_hash,
                        row_hash=receipt.entry_hash,
                        signature=receipt.signature if signed else None,
                        public_key=receipt.public_key if signed else None,
                    ),
                    policy_id=receipt.policy_id,
                )
            )

        logger.info(f"Recorded event {event.event_id} in session {event.session_id}")
        return receipt

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    def receipt_for_event(self, stored: StoredEvent) -> Receipt:
        """Reconstruct the receipt of a stored event from its ledger link.

        Signed links need a public key; when the link has none the managed
        key is used.
        """
        event = stored.event
        link = stored.ledger
        inputs_hash = sha256_hex(event.prompt or "")
        outputs_hash = sha256_hex(event.response or "")

        if not link.signature:
            return ChainReceipt(
                inputs_hash=inputs_hash,
                outputs_hash=outputs_hash,
                prev_hash=link.prev_hash,
                entry_hash=link.row_hash,
                policy_id=stored.policy_id,
                created_at=event.timestamp,
            )

        public_key = link.public_key
        if not public_key:
            if self.key_manager is None:
                raise KeyManagerError("No public key available to verify a signed event")
            public_key = self.key_manager.public_key_b64u

        return SignedReceipt(
            payload=canonicalize(build_payload(event, link.prev_hash)),
            inputs_hash=inputs_hash,
            outputs_hash=outputs_hash,
            prev_hash=link.prev_hash,
            entry_hash=link.row_hash,
            signature=link.signature,
            public_key=public_key,
            policy_id=stored.policy_id,
            created_at=event.timestamp,
        )

    def verify_receipt(self, receipt: Any) -> VerificationResult:
        return self.verifier.verify(receipt)

    def verify_event(self, event_id: str) -> EventVerification:
        """Verify the receipt of a stored event.

        Raises:
            EventNotFoundError: ``event_id`` is unknown.
        """
        stored = self.event_store.get(event_id)
        if stored is None:
            raise EventNotFoundError(f"Event not found: {event_id}", {"event_id": event_id})

        result = self.verifier.verify(self.receipt_for_event(stored))
        return EventVerification(
            result=result,
            event_id=stored.event_id,
            session_id=stored.session_id,
            timestamp=stored.timestamp,
        )

    def verify_session(self, session_id: str) -> AuditResult:
        """Audit the chain of every stored event of ``session_id``."""
        events = self._ordered_session(session_id)
        receipts = [self.receipt_for_event(stored) for stored in events]
        result = self.auditor.audit(receipts, event_ids=[stored.event_id for stored in events])
        logger.info(
            f"Audited session {session_id}: {len(events)} events, "
            f"valid={result.valid}, break_at={result.break_at}"
        )
        return result

    def _ordered_session(self, session_id: str) -> list[StoredEvent]:
        """Events of a session by UTC time, store order breaking ties.

        An unparseable timestamp keeps its store position by inheriting the
        time of the event stored before it.
        """
        keyed = []
        last = datetime.min.replace(tzinfo=timezone.utc)
        for position, stored in enumerate(self.event_store.list_session(session_id)):
            last = _parsed_or(stored.timestamp, last)
            keyed.append((last, position, stored))
        keyed.sort(key=lambda item: item[:2])
        return [stored for _, _, stored in keyed]


def _parsed_or(value: Any, default: datetime) -> datetime:
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError, AttributeError):
        logger.warning(f"Unparseable event timestamp {value!r}")
        return default
