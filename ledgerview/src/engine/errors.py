"""Exception hierarchy for the ledger engine.

Compliance locks and random clearing failures are workflow outcomes, not
exceptions. Only internal-consistency faults are raised.
"""


class LedgerError(Exception):
    """Base class for ledger engine errors."""


class InvariantViolation(LedgerError):
    """Internal state broke a consistency invariant.

    Attributes:
        ids: Transaction ids involved in the violation.
    """

    def __init__(self, message: str, ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.ids = list(ids or [])


class DuplicateTransactionError(InvariantViolation):
    """A transaction id is already present in the store."""
