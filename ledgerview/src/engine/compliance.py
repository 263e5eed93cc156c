"""Compliance gate for high-value transactions.

A transaction above the high-value threshold may only be selected or
cleared while the privilege flag is active. The same predicate decides
checkbox eligibility, the per-row clear action, and the clearing outcome
at resolution time.
"""

from ledgerview.src.models.transaction import HIGH_VALUE_THRESHOLD, Transaction


def is_high_value(amount: int, threshold: int = HIGH_VALUE_THRESHOLD) -> bool:
    """Whether an amount is strictly above the compliance threshold."""
    return amount > threshold


def may_act(
    tx: Transaction,
    privileged: bool,
    threshold: int = HIGH_VALUE_THRESHOLD,
) -> bool:
    """Decide whether a transaction may be selected or cleared.

    Args:
        tx: Transaction to check.
        privileged: Current value of the privilege flag.
        threshold: High-value threshold.

    Returns:
        False iff the transaction is high-value and the flag is off.
    """
    return not (is_high_value(tx.amount, threshold) and not privileged)


def is_selectable(
    tx: Transaction,
    privileged: bool,
    threshold: int = HIGH_VALUE_THRESHOLD,
) -> bool:
    """Whether the selection checkbox for a row is enabled."""
    return tx.is_pending and may_act(tx, privileged, threshold)


def is_clearable(
    tx: Transaction,
    privileged: bool,
    threshold: int = HIGH_VALUE_THRESHOLD,
) -> bool:
    """Whether the per-row clear action is enabled."""
    return (
        not tx.is_cleared
        and not tx.is_processing
        and may_act(tx, privileged, threshold)
    )
