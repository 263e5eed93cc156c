"""Transaction dataclass with JSON serialization.

Transaction is the primary entity held by the ledger store. Records are
mutated in place by the clearing workflow (status, is_processing) and
serialized as rows for the presentation layer.
"""

import json
from dataclasses import dataclass
from datetime import datetime

from ledgerview.src.models.enums import TransactionStatus

# Amounts strictly above this value are high-value and subject to compliance lock
HIGH_VALUE_THRESHOLD = 10_000


@dataclass
class Transaction:
    """A financial transaction record in the ledger.

    Attributes:
        id: Stable identifier, unique across the store (e.g. TX-100001).
        client_name: Client or counterparty name.
        amount: Whole-unit amount, never negative.
        status: Current persisted status.
        timestamp: Timezone-aware UTC datetime of the transaction.
        is_processing: True while the record is inside an in-flight clearing batch.
    """

    id: str
    client_name: str
    amount: int
    status: TransactionStatus
    timestamp: datetime
    is_processing: bool = False

    def __post_init__(self) -> None:
        if self.amount < 0:
            msg = f"Amount must be non-negative, got {self.amount}"
            raise ValueError(msg)
        self.status = TransactionStatus(self.status)

    @property
    def is_high_value(self) -> bool:
        """Whether the amount exceeds the default HIGH_VALUE_THRESHOLD."""
        return self.amount > HIGH_VALUE_THRESHOLD

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_cleared(self) -> bool:
        return self.status == TransactionStatus.CLEARED

    def to_dict(self, high_value_threshold: int = HIGH_VALUE_THRESHOLD) -> dict:
        """Serialize to a dictionary matching the transaction-row schema.

        Args:
            high_value_threshold: Threshold for the is_high_value flag; pass
                the session's configured value when it is not the default.

        Returns:
            Dictionary with the stored fields plus the derived is_high_value flag.
        """
        return {
            "id": self.id,
            "client_name": self.client_name,
            "amount": self.amount,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "is_processing": self.is_processing,
            "is_high_value": self.amount > high_value_threshold,
        }

    def to_json(self, high_value_threshold: int = HIGH_VALUE_THRESHOLD) -> str:
        """Serialize to a JSON string.

        Returns:
            JSON string representation of the transaction.
        """
        return json.dumps(self.to_dict(high_value_threshold))
