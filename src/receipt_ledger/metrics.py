# SPDX-License-Identifier: MPL-2.0
"""Prometheus metrics for receipt building, verification and chain audits."""

from prometheus_client import Counter, Histogram

RECEIPTS_BUILT = Counter(
    "receipt_ledger_receipts_built_total", "receipts built by shape", ["receipt_type"]
)
RECEIPTS_VERIFIED = Counter(
    "receipt_ledger_receipts_verified_total",
    "receipts verified by shape and outcome",
    ["receipt_type", "outcome"],
)
CHAIN_AUDITS = Counter(
    "receipt_ledger_chain_audits_total", "session chain audits by outcome", ["outcome"]
)
VERIFY_LATENCY = Histogram(
    "receipt_ledger_verification_latency_ms",
    "verification latency ms",
    buckets=(1, 2, 5, 10, 20, 50, 100, 200, 500, 1000),
)


def outcome(valid: bool) -> str:
    return "valid" if valid else "invalid"
