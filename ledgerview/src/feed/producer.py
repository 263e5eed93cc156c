"""Synthetic transaction producer for the ledger feed.

Stands in for an external transaction feed. Produces one transaction per
call with realistic-looking amounts: roughly 30% are large (50,000 to
99,999) and therefore high-value, the rest are small (50 to 199).

Ids come from a single monotonically increasing counter shared by seeding
and live production, so every id handed out by one producer is unique.
"""

from datetime import datetime, timedelta

import numpy as np
from numpy.random import Generator

from ledgerview.src.lib.logging_config import get_logger
from ledgerview.src.models.enums import TransactionStatus
from ledgerview.src.models.transaction import Transaction

logger = get_logger("producer")

CLIENT_NAMES: list[str] = [
    "Acme Corp",
    "Globex LLC",
    "Stark Industries",
    "Wayne Enterprises",
    "Umbrella Group",
    "Wonka Industries",
    "Hooli",
    "Initech",
]

# Seeded and produced statuses are drawn uniformly from this list
STATUSES: list[TransactionStatus] = [
    TransactionStatus.PENDING,
    TransactionStatus.CLEARED,
    TransactionStatus.FAILED,
]

ID_PREFIX = "TX-"
ID_BASE = 100_000

LARGE_AMOUNT_PROBABILITY = 0.3
LARGE_AMOUNT_RANGE = (50_000, 100_000)
SMALL_AMOUNT_RANGE = (50, 200)

# Seeded transactions are spread over roughly the last 115 days
SEED_MAX_AGE_SECONDS = 10_000_000


def format_transaction_id(number: int) -> str:
    """Build a transaction id from its sequence number (1 -> TX-100001)."""
    return f"{ID_PREFIX}{ID_BASE + number}"


class FeedProducer:
    """Produces synthetic transactions with globally unique ids.

    Attributes:
        rng: NumPy random generator (seeded for reproducibility).
        next_number: Sequence number used for the next id.
    """

    def __init__(self, rng: Generator | None = None, start_number: int = 1) -> None:
        """Initialize the producer.

        Args:
            rng: NumPy random generator. Defaults to an unseeded one.
            start_number: First id sequence number to hand out.
        """
        if start_number < 1:
            msg = f"Start number must be at least 1, got {start_number}"
            raise ValueError(msg)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.next_number = start_number

    def _next_id(self) -> str:
        tx_id = format_transaction_id(self.next_number)
        self.next_number += 1
        return tx_id

    def _draw_amount(self) -> int:
        if self.rng.random() < LARGE_AMOUNT_PROBABILITY:
            low, high = LARGE_AMOUNT_RANGE
        else:
            low, high = SMALL_AMOUNT_RANGE
        return int(np.floor(low + self.rng.random() * (high - low)))

    def _build(self, timestamp: datetime) -> Transaction:
        amount = self._draw_amount()
        client_name = CLIENT_NAMES[int(self.rng.integers(0, len(CLIENT_NAMES)))]
        status = STATUSES[int(self.rng.integers(0, len(STATUSES)))]
        return Transaction(
            id=self._next_id(),
            client_name=client_name,
            amount=amount,
            status=status,
            timestamp=timestamp,
        )

    def produce_one(self, now: datetime) -> Transaction:
        """Produce one live transaction stamped with ``now``.

        Args:
            now: Timezone-aware UTC time of arrival.

        Returns:
            A new Transaction.
        """
        tx = self._build(now)
        logger.debug(
            "Produced transaction",
            extra={"transaction_id": tx.id, "extra_data": {"amount": tx.amount}},
        )
        return tx

    def seed(self, count: int, now: datetime) -> list[Transaction]:
        """Generate the initial ledger contents.

        Timestamps are spread randomly over the SEED_MAX_AGE_SECONDS
        before ``now``.

        Args:
            count: Number of transactions to generate.
            now: Reference time for the timestamps.

        Returns:
            List of ``count`` transactions in id order.
        """
        if count < 0:
            msg = f"Seed count must be non-negative, got {count}"
            raise ValueError(msg)

        seeded = []
        for _ in range(count):
            age = float(self.rng.random()) * SEED_MAX_AGE_SECONDS
            seeded.append(self._build(now - timedelta(seconds=age)))

        logger.info("Seeded %d transactions", count)
        return seeded
