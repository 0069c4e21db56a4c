# SPDX-License-Identifier: MPL-2.0
"""Digest helpers and Ed25519 key management for receipts.

Two entry-hash conventions live here and are intentionally kept apart:
signed receipts use ``sha256(canonical payload)`` while chain-only receipts
use ``sha256(prev_hash + inputs_hash + outputs_hash)`` over the hex text.

Signatures are always computed over the ASCII bytes of the hex digest, never
over the decoded binary digest.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union, cast

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from receipt_ledger.core.canonicalization import canonical_bytes
from receipt_ledger.core.config import Settings
from receipt_ledger.core.exceptions import (
    InvalidKeyFormatError,
    KeyConfigurationError,
    KeyMismatchError,
    SigningUnavailableError,
)

logger = logging.getLogger(__name__)

# Message signed and verified to prove a configured private/public pair match
KEY_CHECK_MESSAGE = b"test"

PublicKeyLike = Union[str, bytes, ed25519.Ed25519PublicKey]


# ----------------------------------------------------------------------
# Digests
# ----------------------------------------------------------------------
def sha256_hex(data: Union[bytes, str]) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``.

    Strings are hashed as their UTF-8 bytes. Raw prompt/response content goes
    through here directly; it is never canonicalized first.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def payload_digest(payload: Any) -> str:
    """Entry hash of a signed receipt: digest of the canonical payload bytes."""
    return sha256_hex(canonical_bytes(payload))


def chain_digest(prev_hash: Optional[str], inputs_hash: str, outputs_hash: str) -> str:
    """Entry hash of a chain-only receipt.

    A missing ``prev_hash`` (first receipt of a chain) contributes nothing to
    the concatenation.
    """
    return sha256_hex((prev_hash or "") + inputs_hash + outputs_hash)


# ----------------------------------------------------------------------
# Encoding helpers
# ----------------------------------------------------------------------
def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64_decode_any(data: str) -> bytes:
    """Decode standard or URL-safe base64, with or without padding."""
    cleaned = "".join(data.split())
    padding = "=" * (-len(cleaned.rstrip("=")) % 4)
    return base64.urlsafe_b64decode(cleaned.rstrip("=") + padding)


def decode_public_key(value: PublicKeyLike) -> ed25519.Ed25519PublicKey:
    """Decode an Ed25519 public key from any of the accepted encodings.

    Accepted: an ``Ed25519PublicKey`` instance, PEM SubjectPublicKeyInfo, or
    base64/base64url of either the raw 32 key bytes or DER SubjectPublicKeyInfo.

    Raises:
        InvalidKeyFormatError: if the value cannot be decoded.
    """
    if isinstance(value, ed25519.Ed25519PublicKey):
        return value

    if isinstance(value, bytes):
        if len(value) == 32:
            try:
                return ed25519.Ed25519PublicKey.from_public_bytes(value)
            except ValueError as exc:
                raise InvalidKeyFormatError(f"Could not decode public key: {exc}") from exc
        value = value.decode("ascii", errors="replace")

    text = value.strip()
    try:
        if text.startswith("-----BEGIN"):
            key = serialization.load_pem_public_key(text.encode("ascii"))
        else:
            raw = b64_decode_any(text)
            if len(raw) == 32:
                key = ed25519.Ed25519PublicKey.from_public_bytes(raw)
            else:
                key = serialization.load_der_public_key(raw)
    except (ValueError, TypeError, binascii.Error, UnicodeError) as exc:
        raise InvalidKeyFormatError(f"Could not decode public key: {exc}") from exc

    if not isinstance(key, ed25519.Ed25519PublicKey):
        raise InvalidKeyFormatError("Unsupported public key type. Must be Ed25519.")
    return key


def decode_private_key(pem: str) -> ed25519.Ed25519PrivateKey:
    """Load a PKCS#8 PEM Ed25519 private key.

    Raises:
        InvalidKeyFormatError: if the PEM is unreadable or not Ed25519.
    """
    try:
        key = serialization.load_pem_private_key(pem.strip().encode("ascii"), password=None)
    except (ValueError, TypeError, UnicodeError) as exc:
        raise InvalidKeyFormatError(f"Could not decode private key: {exc}") from exc
    if not isinstance(key, ed25519.Ed25519PrivateKey):
        raise InvalidKeyFormatError("Unsupported private key type. Must be Ed25519.")
    return key


def check_signature(
    message_digest_hex: str, signature: str, public_key: PublicKeyLike
) -> tuple[bool, Optional[str]]:
    """Verify ``signature`` over a hex digest and explain any failure.

    Returns:
        ``(True, None)`` for a good signature, otherwise ``(False, reason)``.
        Malformed keys or signatures never raise.
    """
    try:
        key = decode_public_key(public_key)
    except InvalidKeyFormatError as exc:
        return False, exc.message

    try:
        sig_bytes = b64_decode_any(signature)
    except (binascii.Error, ValueError, AttributeError) as exc:
        return False, f"Signature is not valid base64: {exc}"

    try:
        key.verify(sig_bytes, message_digest_hex.encode("ascii"))
    except InvalidSignature:
        return False, "Signature does not match digest for this public key"
    except (ValueError, UnicodeError) as exc:
        return False, f"Signature verification error: {exc}"
    return True, None


def verify_signature(message_digest_hex: str, signature: str, public_key: PublicKeyLike) -> bool:
    """Return whether ``signature`` is valid for ``message_digest_hex``."""
    ok, reason = check_signature(message_digest_hex, signature, public_key)
    if not ok:
        logger.debug(f"Signature verification failed: {reason}")
    return ok


# ----------------------------------------------------------------------
# Key pairs
# ----------------------------------------------------------------------
class KeySource(str, Enum):
    """Where a key pair came from."""

    ENVIRONMENT = "environment"
    EPHEMERAL = "ephemeral"


@dataclass(frozen=True)
class KeyPair:
    """An Ed25519 signing pair and its provenance.

    ``source`` is :attr:`KeySource.EPHEMERAL` for pairs generated in memory
    because nothing was configured; such keys vanish with the process and
    receipts signed with them carry no durable trust.
    """

    private_key: ed25519.Ed25519PrivateKey
    public_key: ed25519.Ed25519PublicKey
    source: KeySource = KeySource.EPHEMERAL
    kid: str = field(default_factory=lambda: f"key-{os.urandom(8).hex()}")

    @property
    def ephemeral(self) -> bool:
        return self.source is KeySource.EPHEMERAL

    @classmethod
    def generate(cls, source: KeySource = KeySource.EPHEMERAL) -> KeyPair:
        """Generate a new key pair held only in memory."""
        private_key = ed25519.Ed25519PrivateKey.generate()
        return cls(private_key=private_key, public_key=private_key.public_key(), source=source)

    @classmethod
    def from_private_bytes(
        cls, private_bytes: bytes, source: KeySource = KeySource.ENVIRONMENT
    ) -> KeyPair:
        """Create a KeyPair from a raw 32-byte seed (handy for deterministic tests)."""
        private_key = ed25519.Ed25519PrivateKey.from_private_bytes(private_bytes)
        return cls(private_key=private_key, public_key=private_key.public_key(), source=source)

    @classmethod
    def from_encoded(cls, private_key_pem: str, public_key: PublicKeyLike) -> KeyPair:
        """Load a configured pair and prove that the two halves belong together.

        Raises:
            InvalidKeyFormatError: either half cannot be decoded.
            KeyMismatchError: the public key does not verify the private key's
                signature over :data:`KEY_CHECK_MESSAGE`.
        """
        private_key = decode_private_key(private_key_pem)
        public = decode_public_key(public_key)

        test_signature = private_key.sign(KEY_CHECK_MESSAGE)
        try:
            public.verify(test_signature, KEY_CHECK_MESSAGE)
        except InvalidSignature as exc:
            raise KeyMismatchError(
                "Configured public key does not match the signing key",
                {"public_key": public_key if isinstance(public_key, str) else None},
            ) from exc

        return cls(private_key=private_key, public_key=public, source=KeySource.ENVIRONMENT)

    def sign(self, message_digest_hex: str) -> str:
        """Sign the ASCII bytes of a hex digest; returns standard base64."""
        signature = self.private_key.sign(message_digest_hex.encode("ascii"))
        return base64.b64encode(signature).decode("ascii")

    def verify(self, message_digest_hex: str, signature: str) -> bool:
        """Verify a signature against this pair's public key."""
        return verify_signature(message_digest_hex, signature, self.public_key)

    def public_bytes(self) -> bytes:
        """Get the raw 32-byte public key."""
        return cast(
            "bytes",
            self.public_key.public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            ),
        )

    @property
    def public_key_b64u(self) -> str:
        """Raw public key, base64url without padding."""
        return b64url_encode(self.public_bytes())

    def private_pem(self) -> str:
        """PKCS#8 PEM of the private key. Never place this in a receipt."""
        return cast(
            "bytes",
            self.private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ),
        ).decode("ascii")

    def public_pem(self) -> str:
        """SubjectPublicKeyInfo PEM of the public key."""
        return cast(
            "bytes",
            self.public_key.public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ),
        ).decode("ascii")


class KeyManager:
    """Owns the process signing key.

    The pair is loaded (or generated) once, under a lock, by the first call to
    :meth:`load_or_generate`; afterwards it is read-only and the manager may
    be shared freely between threads.
    """

    def __init__(
        self,
        private_key_pem: Optional[str] = None,
        public_key_b64u: Optional[str] = None,
        key_pair: Optional[KeyPair] = None,
    ) -> None:
        self._private_key_pem = private_key_pem
        self._public_key_b64u = public_key_b64u
        self._key_pair = key_pair
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> KeyManager:
        return cls(
            private_key_pem=settings.private_key_pem,
            public_key_b64u=settings.public_key_b64u,
        )

    @property
    def configured(self) -> bool:
        """True when both halves of a pair are configured externally."""
        return bool(self._private_key_pem and self._public_key_b64u)

    @property
    def initialized(self) -> bool:
        return self._key_pair is not None

    def load_or_generate(self) -> KeyPair:
        """Return the process key pair, loading or generating it on first use.

        Raises:
            KeyConfigurationError: only one half of the pair is configured.
            InvalidKeyFormatError: configured key material cannot be decoded.
            KeyMismatchError: the configured halves do not belong together.
        """
        with self._lock:
            if self._key_pair is None:
                self._key_pair = self._load()
            return self._key_pair

    def _load(self) -> KeyPair:
        has_private = bool(self._private_key_pem)
        has_public = bool(self._public_key_b64u)

        if has_private and has_public:
            key_pair = KeyPair.from_encoded(
                cast(str, self._private_key_pem), cast(str, self._public_key_b64u)
            )
            logger.info("Receipt keys loaded from environment and validated")
            return key_pair

        if has_private != has_public:
            missing = "public key" if has_private else "private key"
            raise KeyConfigurationError(
                f"Incomplete receipt key configuration: {missing} is missing",
                {"private_key": has_private, "public_key": has_public},
            )

        key_pair = KeyPair.generate(KeySource.EPHEMERAL)
        logger.warning(
            "No receipt keys configured; generated an ephemeral key pair "
            f"(public key {key_pair.public_key_b64u}). Not suitable for production."
        )
        return key_pair

    @property
    def key_pair(self) -> KeyPair:
        return self.load_or_generate()

    @property
    def ephemeral(self) -> bool:
        return self.key_pair.ephemeral

    @property
    def public_key_b64u(self) -> str:
        return self.key_pair.public_key_b64u

    def sign(self, message_digest_hex: str) -> str:
        """Sign a hex digest with the managed key.

        Raises:
            SigningUnavailableError: the key could not be initialised.
        """
        try:
            key_pair = self.load_or_generate()
        except (KeyConfigurationError, InvalidKeyFormatError, KeyMismatchError) as exc:
            raise SigningUnavailableError(f"Signing key unavailable: {exc.message}") from exc
        return key_pair.sign(message_digest_hex)

    def verify(
        self,
        message_digest_hex: str,
        signature: str,
        public_key: Optional[PublicKeyLike] = None,
    ) -> bool:
        """Verify a signature; defaults to the managed public key. Never raises."""
        if public_key is None:
            public_key = self.key_pair.public_key
        return verify_signature(message_digest_hex, signature, public_key)
