"""Shared constants and enums for the ledger view engine.

Defines canonical values for transaction statuses and clearing outcomes.
These MUST match the JSON Schema contract in
contracts/transaction-row.schema.json.
"""

from enum import StrEnum


class TransactionStatus(StrEnum):
    """Persisted status of a ledger transaction.

    State transitions follow a single-step model:
    - pending -> cleared
    - failed -> cleared (generated rows only)
    A failed or compliance-locked clearing attempt leaves the status as it
    was. FAILED only appears as a generated display value on produced rows,
    never as the result of a clearing attempt.
    """

    PENDING = "pending"
    CLEARED = "cleared"
    FAILED = "failed"


class ClearingOutcome(StrEnum):
    """Outcome decided for one transaction when a clearing batch resolves."""

    LOCKED = "locked"
    FAILED = "failed"
    CLEARED = "cleared"


# Valid state transitions for Transaction status
VALID_STATE_TRANSITIONS: dict[TransactionStatus, list[TransactionStatus]] = {
    TransactionStatus.PENDING: [TransactionStatus.CLEARED],
    TransactionStatus.FAILED: [TransactionStatus.CLEARED],
    TransactionStatus.CLEARED: [],
}
