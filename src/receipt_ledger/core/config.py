# SPDX-License-Identifier: MPL-2.0
"""Environment based configuration for the Receipt Ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

PRIVATE_KEY_ENV = "RECEIPT_SIGNING_PRIVATE_KEY_PEM"
PUBLIC_KEY_ENV = "RECEIPT_VERIFY_PUBKEY_B64U"

DEFAULT_POLICY_ID = "trust.receipt.v1"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _unescape_pem(value: Optional[str]) -> Optional[str]:
    # PEM values exported to a single env line carry literal "\n" sequences
    if not value:
        return None
    return value.replace("\\n", "\n")


@dataclass
class Settings:
    """Runtime settings, usually read from the process environment."""

    private_key_pem: Optional[str] = None
    public_key_b64u: Optional[str] = None
    environment: str = "development"
    allow_ephemeral_keys: bool = True
    policy_id: str = DEFAULT_POLICY_ID
    allowed_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8000"]
    )
    trusted_hosts: list[str] = field(
        default_factory=lambda: ["localhost", "127.0.0.1", "testserver"]
    )
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ

        environment = env.get("RECEIPT_LEDGER_ENV", "development")
        allow_raw = env.get("RECEIPT_ALLOW_EPHEMERAL_KEYS")
        if allow_raw is None:
            allow_ephemeral = environment.lower() != "production"
        else:
            allow_ephemeral = allow_raw.strip().lower() in _TRUE_VALUES

        return cls(
            private_key_pem=_unescape_pem(env.get(PRIVATE_KEY_ENV)),
            public_key_b64u=env.get(PUBLIC_KEY_ENV) or None,
            environment=environment,
            allow_ephemeral_keys=allow_ephemeral,
            policy_id=env.get("RECEIPT_POLICY_ID", DEFAULT_POLICY_ID),
            allowed_origins=_split(
                env.get("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000")
            ),
            trusted_hosts=_split(env.get("TRUSTED_HOSTS", "localhost,127.0.0.1,testserver")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
