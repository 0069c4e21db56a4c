# SPDX-License-Identifier: MPL-2.0
"""Shared fixtures for the Receipt Ledger test suite."""

from __future__ import annotations

import pytest

from receipt_ledger.core.config import Settings
from receipt_ledger.core.crypto import KeyPair, KeySource
from receipt_ledger.core.models import EventDescriptor
from receipt_ledger.core.receipt import ReceiptBuilder

EVENT_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"


@pytest.fixture
def key_pair() -> KeyPair:
    """Deterministic signing key."""
    return KeyPair.from_private_bytes(bytes(range(32)), KeySource.ENVIRONMENT)


@pytest.fixture
def other_key_pair() -> KeyPair:
    """A second, unrelated deterministic key."""
    return KeyPair.from_private_bytes(bytes(range(32, 64)), KeySource.ENVIRONMENT)


@pytest.fixture
def signing_builder(key_pair: KeyPair) -> ReceiptBuilder:
    return ReceiptBuilder(key_pair)


@pytest.fixture
def chain_builder() -> ReceiptBuilder:
    return ReceiptBuilder()


@pytest.fixture
def make_event():
    """Factory for event descriptors with fixed timestamps."""

    def _make(
        prompt: str = "ping",
        response: str = "pong",
        event_id: str = EVENT_ID,
        session_id: str = "session-1",
        timestamp: str = "2025-01-01T00:00:00.000Z",
        **kwargs,
    ) -> EventDescriptor:
        return EventDescriptor(
            event_id=event_id,
            session_id=session_id,
            prompt=prompt,
            response=response,
            model_vendor=kwargs.pop("model_vendor", "openai"),
            model_name=kwargs.pop("model_name", "gpt-4"),
            timestamp=timestamp,
            **kwargs,
        )

    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings.from_env({})
