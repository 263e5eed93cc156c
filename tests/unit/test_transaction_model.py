"""Unit test — Transaction model dataclass creation and JSON serialization."""

import json
from datetime import UTC, datetime

import pytest


class TestTransactionModel:
    """Test Transaction dataclass creation and derived fields."""

    def test_transaction_has_all_fields(self) -> None:
        """A Transaction carries id, client, amount, status, timestamp and flag."""
        from ledgerview.src.models.transaction import Transaction

        ts = datetime(2026, 1, 15, 10, 30, tzinfo=UTC)
        tx = Transaction(
            id="TX-100001",
            client_name="Hooli",
            amount=125,
            status="pending",
            timestamp=ts,
        )
        assert tx.id == "TX-100001"
        assert tx.client_name == "Hooli"
        assert tx.amount == 125
        assert tx.timestamp == ts
        assert tx.is_processing is False

    def test_status_is_coerced_to_enum(self) -> None:
        """A plain status string is stored as a TransactionStatus."""
        from ledgerview.src.models.enums import TransactionStatus
        from ledgerview.src.models.transaction import Transaction

        tx = Transaction(
            id="TX-100001",
            client_name="Hooli",
            amount=1,
            status="cleared",
            timestamp=datetime.now(UTC),
        )
        assert tx.status is TransactionStatus.CLEARED

    def test_unknown_status_rejected(self) -> None:
        """A status outside the enum must raise ValueError."""
        from ledgerview.src.models.transaction import Transaction

        with pytest.raises(ValueError):
            Transaction(
                id="TX-100001",
                client_name="Hooli",
                amount=1,
                status="reversed",
                timestamp=datetime.now(UTC),
            )

    def test_negative_amount_rejected(self) -> None:
        """Amounts are never negative."""
        from ledgerview.src.models.transaction import Transaction

        with pytest.raises(ValueError, match="[Aa]mount"):
            Transaction(
                id="TX-100001",
                client_name="Hooli",
                amount=-5,
                status="pending",
                timestamp=datetime.now(UTC),
            )

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [(0, False), (10_000, False), (10_001, True), (75_000, True)],
    )
    def test_is_high_value_boundary(self, make_tx, amount: int, expected: bool) -> None:
        """High-value means strictly above 10,000."""
        assert make_tx("TX-100001", amount=amount).is_high_value is expected

    def test_status_helpers(self, make_tx) -> None:
        """is_pending / is_cleared reflect the status."""
        pending = make_tx("TX-100001", status="pending")
        cleared = make_tx("TX-100002", status="cleared")
        failed = make_tx("TX-100003", status="failed")

        assert pending.is_pending and not pending.is_cleared
        assert cleared.is_cleared and not cleared.is_pending
        assert not failed.is_pending and not failed.is_cleared


class TestTransactionSerialization:
    """Test to_dict / to_json output."""

    def test_to_dict_fields(self, make_tx) -> None:
        """to_dict emits the stored fields plus is_high_value."""
        tx = make_tx("TX-100001", amount=50_000)
        data = tx.to_dict()
        assert set(data) == {
            "id",
            "client_name",
            "amount",
            "status",
            "timestamp",
            "is_processing",
            "is_high_value",
        }
        assert data["status"] == "pending"
        assert data["is_high_value"] is True

    def test_to_dict_uses_given_threshold(self, make_tx) -> None:
        """is_high_value follows the threshold passed to to_dict and to_json."""
        tx = make_tx("TX-100001", amount=500)
        assert tx.to_dict()["is_high_value"] is False
        assert tx.to_dict(high_value_threshold=100)["is_high_value"] is True
        assert json.loads(tx.to_json(high_value_threshold=100))["is_high_value"] is True

    def test_to_json_round_trips_through_json(self, make_tx) -> None:
        """to_json produces valid JSON with an ISO 8601 timestamp."""
        tx = make_tx("TX-100001")
        parsed = json.loads(tx.to_json())
        assert parsed["id"] == "TX-100001"
        assert datetime.fromisoformat(parsed["timestamp"]) == tx.timestamp
