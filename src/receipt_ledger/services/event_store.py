# SPDX-License-Identifier: MPL-2.0
"""Event sources consulted when verifying stored events.

Durable storage lives outside this package; anything implementing
:class:`EventStore` can be plugged into :class:`LedgerService`.
"""

from __future__ import annotations

import threading
from typing import Optional, Protocol

from receipt_ledger.core.exceptions import ValidationError
from receipt_ledger.core.models import StoredEvent


class EventStore(Protocol):
    """Minimal lookup interface over persisted events."""

    def get(self, event_id: str) -> Optional[StoredEvent]:
        ...

    def list_session(self, session_id: str) -> list[StoredEvent]:
        ...

    def add(self, stored: StoredEvent) -> None:
        ...


class InMemoryEventStore:
    """Thread-safe in-process event store, keyed by event id."""

    def __init__(self) -> None:
        self._events: dict[str, StoredEvent] = {}
        self._sessions: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def get(self, event_id: str) -> Optional[StoredEvent]:
        with self._lock:
            return self._events.get(event_id)

    def list_session(self, session_id: str) -> list[StoredEvent]:
        with self._lock:
            return [self._events[eid] for eid in self._sessions.get(session_id, [])]

    def add(self, stored: StoredEvent) -> None:
        with self._lock:
            if stored.event_id in self._events:
                raise ValidationError(f"Duplicate event_id: {stored.event_id}")
            self._events[stored.event_id] = stored
            self._sessions.setdefault(stored.session_id, []).append(stored.event_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
