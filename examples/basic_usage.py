# SPDX-License-Identifier: MPL-2.0
"""Basic usage example for Receipt Ledger."""
import dataclasses

from receipt_ledger import ReceiptBuilder, audit_chain, verify_receipt
from receipt_ledger.core import EventDescriptor, KeyPair


def main() -> None:
    # Example events of one session
    events = [
        EventDescriptor(
            event_id=f"event-{i}",
            session_id="session-42",
            prompt=prompt,
            response=response,
            model_vendor="openai",
            model_name="gpt-4",
        )
        for i, (prompt, response) in enumerate(
            [("Hello, world!", "Hello! How can I help you today?"), ("ping", "pong")]
        )
    ]

    key_pair = KeyPair.generate()
    builder = ReceiptBuilder(key_pair, allow_ephemeral=True)

    # Create a linked chain of receipts
    receipts = builder.build_chain(events)
    for receipt in receipts:
        print(f"Created receipt: {receipt.entry_hash}")

    # Verify a single receipt
    result = verify_receipt(receipts[0])
    print(f"Receipt is valid: {result.valid}")

    # Audit the whole chain, then break it
    print(f"Chain is valid: {audit_chain(receipts).valid}")
    broken = [receipts[0], dataclasses.replace(receipts[1], prev_hash=None)]
    print(f"Broken chain breaks at: {audit_chain(broken).break_at}")


if __name__ == "__main__":
    main()
