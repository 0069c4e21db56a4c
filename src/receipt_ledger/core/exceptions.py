# SPDX-License-Identifier: MPL-2.0
"""Custom exceptions for the Receipt Ledger.

Only structural problems and key initialisation failures are raised.
Hash mismatches, invalid signatures and chain breaks are verdicts and are
reported through :class:`~receipt_ledger.core.models.VerificationResult` and
:class:`~receipt_ledger.core.models.AuditResult` instead.
"""

from typing import Any, Dict, Optional


class ReceiptLedgerError(Exception):
    """Base exception for all Receipt Ledger errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CryptographicError(ReceiptLedgerError):
    """Raised when cryptographic operations fail."""

    pass


class KeyManagerError(CryptographicError):
    """Base exception for signing key initialisation problems."""

    pass


class KeyMismatchError(KeyManagerError):
    """Raised when the configured private and public keys are not a pair."""

    pass


class InvalidKeyFormatError(KeyManagerError):
    """Raised when stored key material cannot be decoded."""

    pass


class KeyConfigurationError(KeyManagerError):
    """Raised when only one half of a key pair is configured."""

    pass


class EphemeralKeyError(KeyManagerError):
    """Raised when an ephemeral key is used where it was not acknowledged."""

    pass


class SigningUnavailableError(CryptographicError):
    """Raised when a signature is requested but no private key is held."""

    pass


class ReceiptError(ReceiptLedgerError):
    """Base exception for receipt-related errors."""

    pass


class MalformedReceiptError(ReceiptError):
    """Raised when a receipt matches neither the signed nor the chain-only shape."""

    pass


class ValidationError(ReceiptLedgerError):
    """Raised when input validation fails."""

    pass


class EventNotFoundError(ReceiptLedgerError):
    """Raised when a requested event is not known to the event store."""

    pass

