"""Authoritative ordered store of ledger transactions.

The store exclusively owns Transaction records. Records are never deleted;
the clearing workflow mutates status and is_processing in place.
"""

from collections.abc import Iterable, Iterator

from ledgerview.src.engine.errors import DuplicateTransactionError
from ledgerview.src.lib.logging_config import get_logger
from ledgerview.src.models.enums import (
    VALID_STATE_TRANSITIONS,
    ClearingOutcome,
    TransactionStatus,
)
from ledgerview.src.models.transaction import Transaction

logger = get_logger("store")


class TransactionStore:
    """Ordered collection of transactions with an id index.

    Insertion order is preserved: ``add`` appends, ``merge_front`` prepends.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._order: list[Transaction] = []
        self._by_id: dict[str, Transaction] = {}
        for tx in transactions:
            self.add(tx)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._by_id

    def __iter__(self) -> Iterator[Transaction]:
        return iter(list(self._order))

    def list_all(self) -> list[Transaction]:
        """Return the transactions in current view order."""
        return list(self._order)

    def ids(self) -> list[str]:
        return [tx.id for tx in self._order]

    def get(self, tx_id: str) -> Transaction | None:
        return self._by_id.get(tx_id)

    def add(self, tx: Transaction) -> None:
        """Append a transaction to the end of the view.

        Raises:
            DuplicateTransactionError: If the id is already stored.
        """
        if tx.id in self._by_id:
            msg = f"Transaction {tx.id} already exists in the store"
            raise DuplicateTransactionError(msg, [tx.id])
        self._order.append(tx)
        self._by_id[tx.id] = tx

    def set_processing(self, ids: Iterable[str], flag: bool) -> int:
        """Set is_processing on every stored transaction whose id is given.

        Ids that are not stored are ignored.

        Args:
            ids: Transaction ids to update.
            flag: New value of is_processing.

        Returns:
            Number of records updated.
        """
        updated = 0
        for tx_id in set(ids):
            tx = self._by_id.get(tx_id)
            if tx is not None:
                tx.is_processing = flag
                updated += 1
        return updated

    def apply_outcome(self, tx_id: str, outcome: ClearingOutcome) -> Transaction | None:
        """Apply a clearing outcome to one transaction.

        CLEARED moves the record to the cleared status when
        VALID_STATE_TRANSITIONS allows it; a record that is already cleared
        keeps its status and the repeat is logged. LOCKED and FAILED leave
        the status untouched. In every case is_processing is reset.

        Args:
            tx_id: Transaction id.
            outcome: Outcome decided by the clearing workflow.

        Returns:
            The updated transaction, or None if the id is not stored.
        """
        tx = self._by_id.get(tx_id)
        if tx is None:
            return None

        outcome = ClearingOutcome(outcome)
        if outcome is ClearingOutcome.CLEARED:
            if TransactionStatus.CLEARED in VALID_STATE_TRANSITIONS[tx.status]:
                tx.status = TransactionStatus.CLEARED
            else:
                logger.info(
                    "Ignoring cleared outcome for %s: status is %s",
                    tx_id,
                    tx.status.value,
                    extra={"transaction_id": tx_id},
                )
        tx.is_processing = False
        return tx

    def merge_front(self, new_ones: Iterable[Transaction]) -> int:
        """Prepend transactions, keeping their relative order.

        The merge is all-or-nothing: a duplicate id, against the store or
        within ``new_ones``, rejects the whole merge.

        Args:
            new_ones: Transactions ordered newest-first.

        Returns:
            Number of transactions merged.

        Raises:
            DuplicateTransactionError: If any id collides.
        """
        incoming = list(new_ones)
        seen: set[str] = set()
        duplicates = []
        for tx in incoming:
            if tx.id in self._by_id or tx.id in seen:
                duplicates.append(tx.id)
            seen.add(tx.id)
        if duplicates:
            msg = f"Cannot merge duplicate transaction ids: {', '.join(duplicates)}"
            raise DuplicateTransactionError(msg, duplicates)

        self._order[:0] = incoming
        for tx in incoming:
            self._by_id[tx.id] = tx

        if incoming:
            logger.debug("Merged %d transactions at the front", len(incoming))
        return len(incoming)

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TransactionStatus}
        for tx in self._order:
            counts[tx.status.value] += 1
        return counts
