# SPDX-License-Identifier: MPL-2.0
"""Services built on the receipt engine."""

from receipt_ledger.services.event_store import EventStore, InMemoryEventStore
from receipt_ledger.services.ledger import LedgerService

__all__ = ["EventStore", "InMemoryEventStore", "LedgerService"]
