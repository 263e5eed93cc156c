"""Buffer for transactions that arrived but are not yet visible.

Produced transactions are parked here so they do not reshuffle the view
the operator is working in. The operator's reveal action flushes the whole
buffer into the front of the store in one step.
"""

from collections import deque

from ledgerview.src.engine.store import TransactionStore
from ledgerview.src.lib.logging_config import get_logger
from ledgerview.src.models.transaction import Transaction

logger = get_logger("feed_buffer")


class FeedBuffer:
    """Newest-first buffer of incoming transactions.

    Attributes:
        total_received: Count of transactions ever pushed.
    """

    def __init__(self) -> None:
        self._buffer: deque[Transaction] = deque()
        self.total_received = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def size(self) -> int:
        """Number of transactions waiting to be revealed."""
        return len(self._buffer)

    def push(self, tx: Transaction) -> None:
        """Add a newly produced transaction at the front of the buffer."""
        self._buffer.appendleft(tx)
        self.total_received += 1

    def snapshot(self) -> list[Transaction]:
        """Return the buffered transactions, newest first."""
        return list(self._buffer)

    def flush_into(self, store: TransactionStore) -> list[Transaction]:
        """Merge the buffered transactions into the front of the store.

        The store merge is all-or-nothing; the buffer is emptied only after
        it succeeds, so a rejected merge leaves both sides untouched.

        Args:
            store: Store receiving the transactions.

        Returns:
            The merged transactions, newest first.

        Raises:
            DuplicateTransactionError: If a buffered id already exists in the store.
        """
        pending = list(self._buffer)
        if not pending:
            return []

        store.merge_front(pending)
        self._buffer.clear()
        logger.debug("Flushed %d buffered transactions", len(pending))
        return pending
