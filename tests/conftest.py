"""Shared test fixtures for the ledger view engine."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class FixedRandom:
    """Deterministic stand-in for a random source.

    Returns the given values in order, repeating the last one forever.
    Records how many draws were made.
    """

    def __init__(self, values: Iterable[float]) -> None:
        self._values = list(values)
        if not self._values:
            msg = "FixedRandom needs at least one value"
            raise ValueError(msg)
        self.draws = 0

    def random(self) -> float:
        index = min(self.draws, len(self._values) - 1)
        self.draws += 1
        return self._values[index]


@pytest.fixture(autouse=True)
def _reset_ledgerview_logger():
    """Drop handlers installed by a test so they never outlive its streams."""
    yield
    logger = logging.getLogger("ledgerview")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Time and scheduling
# ---------------------------------------------------------------------------


@pytest.fixture
def start_time() -> datetime:
    """Provide a fixed wall-clock origin for the virtual clock."""
    return datetime(2026, 1, 15, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
def virtual_clock(start_time: datetime):
    """Provide a VirtualClock starting at ``start_time``."""
    from ledgerview.src.engine.scheduler import VirtualClock

    return VirtualClock(start=start_time)


@pytest.fixture
def scheduler(virtual_clock):
    """Provide a Scheduler driven by the virtual clock."""
    from ledgerview.src.engine.scheduler import Scheduler

    return Scheduler(virtual_clock)


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------


@pytest.fixture
def fixed_random() -> Callable[..., FixedRandom]:
    """Provide a factory for deterministic random sources.

    Returns:
        Callable taking the values to return, e.g. ``fixed_random(0.5)``.
    """

    def _factory(*values: float) -> FixedRandom:
        return FixedRandom(values)

    return _factory


@pytest.fixture
def default_seed() -> int:
    """Provide a deterministic seed for reproducible tests."""
    return 42


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@pytest.fixture
def make_tx(start_time: datetime) -> Callable[..., object]:
    """Provide a factory for Transaction records with sensible defaults.

    Returns:
        Callable ``make_tx(id, amount=100, status="pending", ...)``.
    """
    from ledgerview.src.models.transaction import Transaction

    def _factory(
        tx_id: str,
        amount: int = 100,
        status: str = "pending",
        client_name: str = "Acme Corp",
        timestamp: datetime | None = None,
        is_processing: bool = False,
    ) -> Transaction:
        return Transaction(
            id=tx_id,
            client_name=client_name,
            amount=amount,
            status=status,
            timestamp=timestamp or start_time,
            is_processing=is_processing,
        )

    return _factory


@pytest.fixture
def make_session(scheduler, fixed_random):
    """Provide a factory for empty LedgerSessions on the virtual scheduler.

    Keyword arguments are passed to LedgerSession; ``rng`` defaults to a
    source that always returns 0.5, so eligible transactions clear.
    """
    from ledgerview.src.engine.session import LedgerSession

    def _factory(**kwargs) -> LedgerSession:
        kwargs.setdefault("rng", fixed_random(0.5))
        return LedgerSession(scheduler=scheduler, **kwargs)

    return _factory


@pytest.fixture
def session_with(make_session, make_tx):
    """Provide a factory building a session pre-loaded with transactions.

    Returns:
        Callable ``session_with([(id, amount, status), ...], **session_kwargs)``.
    """

    def _factory(rows, **kwargs):
        session = make_session(**kwargs)
        for tx_id, amount, status in rows:
            session.store.add(make_tx(tx_id, amount=amount, status=status))
        return session

    return _factory


# ---------------------------------------------------------------------------
# Contracts and config
# ---------------------------------------------------------------------------


@pytest.fixture
def transaction_row_schema() -> dict:
    """Load the transaction-row JSON Schema contract."""
    path = _PROJECT_ROOT / "contracts" / "transaction-row.schema.json"
    return json.loads(path.read_text())


@pytest.fixture
def config_dir() -> Path:
    """Provide the directory holding the shipped configuration files."""
    return _PROJECT_ROOT / "config"
