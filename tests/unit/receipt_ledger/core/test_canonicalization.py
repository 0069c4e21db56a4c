# SPDX-License-Identifier: MPL-2.0
"""Tests for canonical JSON encoding."""

from datetime import datetime, timezone

import pytest

from receipt_ledger.core.canonicalization import (
    CanonicalizationError,
    canonical_bytes,
    canonicalize,
    verify_canonical_equivalence,
)


def test_keys_sorted_at_every_level():
    data = {"b": 2, "a": {"z": 26, "y": [3, 1, 2]}, "c": "test"}
    assert canonicalize(data) == '{"a":{"y":[3,1,2],"z":26},"b":2,"c":"test"}'


def test_insertion_order_does_not_matter():
    first = {"event_id": "e1", "metadata": {"x": 1, "y": 2}}
    second = {"metadata": {"y": 2, "x": 1}, "event_id": "e1"}
    assert canonical_bytes(first) == canonical_bytes(second)
    assert verify_canonical_equivalence(first, second)


def test_arrays_keep_their_order():
    assert not verify_canonical_equivalence([1, 2], [2, 1])


def test_canonicalize_floats():
    assert canonicalize(1e6) == "1000000"
    assert canonicalize(1.23e-4) == "0.000123"
    assert canonicalize(42.0) == "42"
    with pytest.raises(CanonicalizationError):
        canonicalize(float("nan"))


def test_canonicalize_datetimes():
    dt = datetime(2023, 5, 1, 12, 30, 0, 123000, tzinfo=timezone.utc)
    assert canonicalize(dt) == '"2023-05-01T12:30:00.123Z"'

    dt_naive = datetime(2023, 5, 1, 12, 30, 0)
    assert canonicalize(dt_naive) == '"2023-05-01T12:30:00Z"'


def test_unicode_normalization():
    # The composed and decomposed forms of "é" should canonicalize identically
    assert canonicalize("\u00e9") == canonicalize("e\u0301")
    assert canonicalize({"e\u0301": 1}) == canonicalize({"\u00e9": 1})
    assert canonical_bytes({"k": "e\u0301"}) == '{"k":"é"}'.encode("utf-8")


def test_non_string_keys_rejected():
    with pytest.raises(CanonicalizationError):
        canonicalize({1: "one"})


def test_unsupported_type_rejected():
    with pytest.raises(CanonicalizationError):
        canonicalize({"value": object()})
    assert verify_canonical_equivalence({"value": object()}, {}) is False


def test_keys_colliding_after_normalization_rejected():
    with pytest.raises(CanonicalizationError, match="collide"):
        canonicalize({"\u00e9": 1, "e\u0301": 2})
    with pytest.raises(CanonicalizationError):
        canonicalize({"outer": [{"caf\u00e9": 1, "cafe\u0301": 2}]})
