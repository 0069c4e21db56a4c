# SPDX-License-Identifier: MPL-2.0
"""Canonical JSON encoding of receipt payloads.

The entry hash of a signed receipt is the SHA-256 of these bytes, so two
logically equal payloads must always encode identically. The encoding
follows the JSON Canonicalization Scheme (RFC 8785): keys sorted at every
level, no insignificant whitespace, shortest number form. Strings and keys
are NFC normalised first.
"""

from __future__ import annotations

import json
import math
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping


class CanonicalizationError(Exception):
    """Raised when data cannot be canonicalized."""


def _nfc(text: str) -> str:
    return unicodedata.normalize("NFC", text)


def _number(value: float) -> Any:
    if not math.isfinite(value):
        raise CanonicalizationError("Non-finite float values are not allowed")
    if value.is_integer():
        return int(value)
    return float(Decimal(repr(value)))


def _timestamp(value: datetime) -> str:
    """UTC ``Z`` timestamp with trailing fractional zeros removed."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    fraction = f"{value.microsecond:06d}".rstrip("0")
    return f"{text}.{fraction}Z" if fraction else f"{text}Z"


def _mapping(value: Mapping[Any, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise CanonicalizationError(f"Mapping keys must be strings, got {type(key).__name__}")
        normalized = _nfc(key)
        if normalized in result:
            raise CanonicalizationError(
                f"Keys collide after Unicode normalisation: {normalized!r}"
            )
        result[normalized] = _normalize(item)
    return result


def _normalize(value: Any) -> Any:
    """Reduce ``value`` to plain JSON types in canonical form."""
    if value is None or isinstance(value, (bool, int)):
        return value
    if isinstance(value, str):
        return _nfc(value)
    if isinstance(value, float):
        return _number(value)
    if isinstance(value, datetime):
        return _timestamp(value)
    if isinstance(value, Mapping):
        return _mapping(value)
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    raise CanonicalizationError(f"Type {type(value)!r} is not supported for canonicalization")


def canonicalize(data: Any) -> str:
    """Canonical JSON text of ``data``.

    Raises:
        CanonicalizationError: ``data`` holds a non-JSON type, a non-finite
            float, a non-string key, or keys equal after NFC normalisation.
    """
    try:
        return json.dumps(
            _normalize(data),
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise CanonicalizationError(str(exc)) from exc


def canonical_bytes(data: Any) -> bytes:
    """UTF-8 bytes of :func:`canonicalize`; the input to the entry hash."""
    return canonicalize(data).encode("utf-8")


def verify_canonical_equivalence(a: Any, b: Any) -> bool:
    """True if ``a`` and ``b`` have the same canonical encoding."""
    try:
        return canonicalize(a) == canonicalize(b)
    except CanonicalizationError:
        return False
