# SPDX-License-Identifier: MPL-2.0
"""Data models for the Receipt Ledger."""
from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from jsonschema import Draft202012Validator

from receipt_ledger.core.exceptions import MalformedReceiptError

# Legacy wire names for the signature fields
FIELD_ALIASES = {"ed25519_sig": "signature", "ed25519_pubkey": "public_key"}

RECEIPT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Trust Receipt",
    "type": "object",
    "properties": {
        "payload": {"type": ["string", "null"]},
        "inputs_hash": {"type": "string"},
        "outputs_hash": {"type": "string"},
        "prev_hash": {"type": ["string", "null"]},
        "entry_hash": {"type": "string"},
        "signature": {"type": ["string", "null"]},
        "public_key": {"type": ["string", "null"]},
        "policy_id": {},
        "created_at": {},
    },
}

_SCHEMA_VALIDATOR = Draft202012Validator(RECEIPT_SCHEMA)


class ReceiptType(str, Enum):
    """Shape of a receipt, decided by which fields are present."""

    SIGNED = "ed25519_signed"
    HASH_CHAIN = "hash_chain"


class CheckStatus(str, Enum):
    """Outcome of one verification check."""

    VALID = "valid"
    MISMATCH = "mismatch"
    INVALID = "invalid"
    MISSING = "missing"
    ERROR = "error"


@dataclass(frozen=True)
class ChainReceipt:
    """A receipt protected only by hash linkage.

    ``entry_hash == sha256(prev_hash + inputs_hash + outputs_hash)``.
    """

    inputs_hash: str
    outputs_hash: str
    prev_hash: Optional[str]
    entry_hash: str
    policy_id: str = "trust.receipt.v1"
    created_at: Optional[str] = None

    receipt_type = ReceiptType.HASH_CHAIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "payload": None,
            "inputs_hash": self.inputs_hash,
            "outputs_hash": self.outputs_hash,
            "prev_hash": self.prev_hash,
            "entry_hash": self.entry_hash,
            "public_key": None,
            "signature": None,
            "policy_id": self.policy_id,
            "created_at": self.created_at,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


@dataclass(frozen=True)
class SignedReceipt:
    """A receipt whose ``entry_hash`` is the digest of its canonical payload
    and is signed with Ed25519.
    """

    payload: str
    inputs_hash: str
    outputs_hash: str
    prev_hash: Optional[str]
    entry_hash: str
    signature: str
    public_key: str
    policy_id: str = "trust.receipt.v1"
    created_at: Optional[str] = None

    receipt_type = ReceiptType.SIGNED

    def to_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload,
            "inputs_hash": self.inputs_hash,
            "outputs_hash": self.outputs_hash,
            "prev_hash": self.prev_hash,
            "entry_hash": self.entry_hash,
            "public_key": self.public_key,
            "signature": self.signature,
            "policy_id": self.policy_id,
            "created_at": self.created_at,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


Receipt = Union[SignedReceipt, ChainReceipt]


def _present(value: Any) -> bool:
    return value is not None and value != ""


def receipt_from_dict(data: Any) -> Receipt:
    """Parse a wire mapping into a :data:`Receipt`.

    The shape is decided before any hashing: ``payload``, ``signature`` and
    ``public_key`` must be all present (signed) or all absent (chain-only),
    and ``inputs_hash``, ``outputs_hash`` and ``entry_hash`` are always
    required.

    Raises:
        MalformedReceiptError: the mapping matches neither shape.
    """
    if not isinstance(data, Mapping):
        raise MalformedReceiptError("Receipt must be a JSON object")

    normalized = dict(data)
    for legacy, name in FIELD_ALIASES.items():
        if legacy in normalized and not _present(normalized.get(name)):
            normalized[name] = normalized.pop(legacy)

    errors = sorted(_SCHEMA_VALIDATOR.iter_errors(normalized), key=lambda e: list(e.path))
    if errors:
        raise MalformedReceiptError(
            "Unrecognized receipt format",
            {"errors": [f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors]},
        )

    missing = [f for f in ("inputs_hash", "outputs_hash", "entry_hash") if not _present(normalized.get(f))]
    signed_fields = {f: _present(normalized.get(f)) for f in ("payload", "signature", "public_key")}

    if missing:
        raise MalformedReceiptError("Unrecognized receipt format", {"missing": missing})

    policy_id = normalized.get("policy_id")
    created_at = normalized.get("created_at")
    common = {
        "inputs_hash": normalized["inputs_hash"],
        "outputs_hash": normalized["outputs_hash"],
        "prev_hash": normalized.get("prev_hash") or None,
        "entry_hash": normalized["entry_hash"],
        "policy_id": policy_id if policy_id is not None else "trust.receipt.v1",
        "created_at": created_at,
    }

    if all(signed_fields.values()):
        return SignedReceipt(
            payload=normalized["payload"],
            signature=normalized["signature"],
            public_key=normalized["public_key"],
            **common,
        )
    if not any(signed_fields.values()):
        return ChainReceipt(**common)

    raise MalformedReceiptError(
        "Unrecognized receipt format",
        {"missing": sorted(f for f, present in signed_fields.items() if not present)},
    )


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC ``datetime``.

    Accepts a trailing ``Z``, numeric offsets and any number of fractional
    digits (truncated to microseconds). Naive values are taken as UTC.

    Raises:
        ValueError: ``value`` is not an ISO 8601 timestamp.
    """
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class EventDescriptor:
    """The descriptive data of one event that a receipt is built from."""

    event_id: str
    session_id: str
    prompt: str
    response: str
    user_id: Optional[str] = None
    model_vendor: str = "unknown"
    model_name: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EventDescriptor:
        known = {f for f in cls.__dataclass_fields__}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        if "user" in data and "user_id" not in kwargs and data["user"] is not None:
            kwargs["user_id"] = str(data["user"])
        return cls(**kwargs)


@dataclass(frozen=True)
class LedgerLink:
    """Hash-chain bookkeeping persisted next to an event."""

    prev_hash: Optional[str]
    row_hash: str
    signature: Optional[str] = None
    public_key: Optional[str] = None


@dataclass(frozen=True)
class StoredEvent:
    """An event as kept by an external event store."""

    event: EventDescriptor
    ledger: LedgerLink
    policy_id: str = "ledger.v1"

    @property
    def event_id(self) -> str:
        return self.event.event_id

    @property
    def session_id(self) -> str:
        return self.event.session_id

    @property
    def timestamp(self) -> str:
        return self.event.timestamp


# ----------------------------------------------------------------------
# Verdicts
# ----------------------------------------------------------------------
@dataclass
class Check:
    """One independently reported verification check."""

    field: str
    status: CheckStatus
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None
    components: Optional[dict[str, Any]] = None

    @property
    def passed(self) -> bool:
        return self.status is CheckStatus.VALID

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "field": self.field,
            "status": self.status.value,
            "message": self.message,
        }
        if self.expected is not None or self.actual is not None:
            data["expected"] = self.expected
            data["actual"] = self.actual
        if self.components is not None:
            data["components"] = self.components
        return data


@dataclass
class VerificationWarning:
    """Non-fatal observation about a receipt."""

    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class VerificationResult:
    """Result of verifying a single receipt."""

    receipt_type: ReceiptType
    checks: list[Check] = field(default_factory=list)
    warnings: list[VerificationWarning] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return bool(self.checks) and all(check.passed for check in self.checks)

    def check(self, name: str) -> Optional[Check]:
        """First check reported for field ``name``."""
        for check in self.checks:
            if check.field == name:
                return check
        return None

    @property
    def failures(self) -> list[Check]:
        return [check for check in self.checks if not check.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "receipt_type": self.receipt_type.value,
            "checks": [check.to_dict() for check in self.checks],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


@dataclass
class EventVerification:
    """Verification of a stored event, echoing its identity."""

    result: VerificationResult
    event_id: str
    session_id: str
    timestamp: str

    @property
    def valid(self) -> bool:
        return self.result.valid

    def to_dict(self) -> dict[str, Any]:
        data = self.result.to_dict()
        data.update(
            {
                "event_id": self.event_id,
                "session_id": self.session_id,
                "timestamp": self.timestamp,
            }
        )
        return data


@dataclass
class ChainEntryResult:
    """Audit outcome for one position of a session chain."""

    index: int
    entry_hash: str
    expected_prev: Optional[str]
    actual_prev: Optional[str]
    expected_hash: str
    link_valid: bool
    hash_valid: bool
    signature_valid: Optional[bool] = None
    event_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.link_valid and self.hash_valid and self.signature_valid is not False

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "event_id": self.event_id,
            "link_valid": self.link_valid,
            "hash_valid": self.hash_valid,
            "signature_valid": self.signature_valid,
            "expected_prev": self.expected_prev,
            "prev_hash": self.actual_prev,
            "expected_hash": self.expected_hash,
            "actual_hash": self.entry_hash,
            "message": self.message,
        }


@dataclass
class ChainSummary:
    total: int
    checked: int
    hash_chain_valid: bool
    signatures_valid: int
    signatures_invalid: int
    signatures_unchecked: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AuditResult:
    """Result of replaying a session chain."""

    entries: list[ChainEntryResult]
    total: int
    break_at: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self.break_at is None and all(entry.valid for entry in self.entries)

    @property
    def summary(self) -> ChainSummary:
        return ChainSummary(
            total=self.total,
            checked=len(self.entries),
            hash_chain_valid=self.break_at is None,
            signatures_valid=sum(1 for e in self.entries if e.signature_valid is True),
            signatures_invalid=sum(1 for e in self.entries if e.signature_valid is False),
            signatures_unchecked=sum(1 for e in self.entries if e.signature_valid is None),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "count": self.total,
            "break_at": self.break_at,
            "results": [entry.to_dict() for entry in self.entries],
            "summary": self.summary.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)
