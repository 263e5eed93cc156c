"""Batched asynchronous clearing workflow.

One ``clear_batch`` call marks its transactions as processing immediately,
then schedules a single continuation after the fixed clearing delay. When
the continuation fires, every transaction of the batch is resolved against
the privilege flag and the random source current at that moment:

    Submitted -> Processing -> {Locked, Failed, Cleared}

Locked and Failed leave the transaction pending. Only cleared ids are
dropped from the selection, so locked or failed ones can be retried
without re-selecting them.
"""

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

from ledgerview.src.engine.compliance import may_act
from ledgerview.src.engine.scheduler import Scheduler
from ledgerview.src.engine.selection import SelectionSet
from ledgerview.src.engine.store import TransactionStore
from ledgerview.src.lib.logging_config import get_logger
from ledgerview.src.models.enums import ClearingOutcome
from ledgerview.src.models.transaction import HIGH_VALUE_THRESHOLD

logger = get_logger("clearing")

DEFAULT_CLEARING_DELAY = 1.5
DEFAULT_FAILURE_RATE = 0.10


class RandomSource(Protocol):
    """Anything that draws uniform floats in [0, 1), e.g. numpy's Generator."""

    def random(self) -> float: ...


@dataclass
class ClearingTicket:
    """Handle for one submitted clearing batch.

    Attributes:
        batch_id: Sequential number of the batch within the workflow.
        ids: Transaction ids snapshotted at submission.
        submitted_at: Monotonic submission time.
        due_at: Monotonic time the batch resolves.
        outcomes: Outcome per id, filled at resolution. Ids missing from the
            store at resolution time are absent.
    """

    batch_id: int
    ids: tuple[str, ...]
    submitted_at: float
    due_at: float
    outcomes: dict[str, ClearingOutcome] = field(default_factory=dict)
    resolved: bool = False

    def ids_with(self, outcome: ClearingOutcome) -> list[str]:
        return [tx_id for tx_id, result in self.outcomes.items() if result is outcome]

    @property
    def cleared_ids(self) -> list[str]:
        return self.ids_with(ClearingOutcome.CLEARED)

    def summary(self) -> dict[str, int]:
        counts = Counter(result.value for result in self.outcomes.values())
        return {outcome.value: counts.get(outcome.value, 0) for outcome in ClearingOutcome}


class ClearingWorkflow:
    """Orchestrates clearing batches over a store and a selection.

    Attributes:
        delay_seconds: Fixed latency between submission and resolution.
        failure_rate: Probability that an eligible transaction fails to clear.
        high_value_threshold: Threshold passed to the compliance gate.
    """

    def __init__(
        self,
        store: TransactionStore,
        selection: SelectionSet,
        scheduler: Scheduler,
        is_privileged: Callable[[], bool],
        rng: RandomSource | None = None,
        delay_seconds: float = DEFAULT_CLEARING_DELAY,
        failure_rate: float = DEFAULT_FAILURE_RATE,
        high_value_threshold: int = HIGH_VALUE_THRESHOLD,
        on_resolved: Callable[[ClearingTicket], None] | None = None,
    ) -> None:
        """Initialize the workflow.

        Args:
            store: Store holding the transactions.
            selection: Selection trimmed of cleared ids after each batch.
            scheduler: Scheduler for the resolution continuation.
            is_privileged: Reads the privilege flag at resolution time.
            rng: Random source. Defaults to ``numpy.random.default_rng()``.
            delay_seconds: Fixed latency of every batch.
            failure_rate: Probability in [0, 1] of a random clearing failure.
            high_value_threshold: Amounts above this are compliance locked.
            on_resolved: Called with the ticket after a batch resolves.
        """
        if delay_seconds <= 0:
            msg = f"Clearing delay must be positive, got {delay_seconds}"
            raise ValueError(msg)
        if not 0 <= failure_rate <= 1:
            msg = f"Failure rate must be between 0 and 1, got {failure_rate}"
            raise ValueError(msg)

        self.store = store
        self.selection = selection
        self.scheduler = scheduler
        self.is_privileged = is_privileged
        self.rng = rng if rng is not None else np.random.default_rng()
        self.delay_seconds = delay_seconds
        self.failure_rate = failure_rate
        self.high_value_threshold = high_value_threshold
        self.on_resolved = on_resolved
        self._batch_counter = 0
        self._in_flight: dict[int, ClearingTicket] = {}

    @property
    def in_flight(self) -> int:
        """Number of submitted batches not yet resolved."""
        return len(self._in_flight)

    def clear_batch(self, ids: Iterable[str]) -> ClearingTicket:
        """Submit a batch of transactions for clearing.

        Marks every stored id as processing right away and schedules one
        resolution for the whole batch.

        Args:
            ids: Transaction ids; duplicates are collapsed, order is kept.

        Returns:
            Ticket describing the submitted batch.
        """
        batch = tuple(dict.fromkeys(ids))
        self.store.set_processing(batch, True)

        self._batch_counter += 1
        now = self.scheduler.clock.monotonic()
        ticket = ClearingTicket(
            batch_id=self._batch_counter,
            ids=batch,
            submitted_at=now,
            due_at=now + self.delay_seconds,
        )
        self._in_flight[ticket.batch_id] = ticket
        self.scheduler.call_later(
            self.delay_seconds,
            lambda: self.resolve(ticket),
            name=f"clearing-batch-{ticket.batch_id}",
        )

        logger.info(
            "Submitted clearing batch %d with %d transactions",
            ticket.batch_id,
            len(batch),
            extra={"batch_id": ticket.batch_id, "extra_data": {"ids": list(batch)}},
        )
        return ticket

    def clear_one(self, tx_id: str) -> ClearingTicket:
        """Submit a single transaction; identical to a batch of one."""
        return self.clear_batch([tx_id])

    def decide_outcome(self, tx_id: str) -> ClearingOutcome | None:
        """Decide the outcome for one transaction from its current state.

        Precedence: compliance lock, then random failure, then cleared.
        The random source is only drawn for transactions that pass the gate.

        Returns:
            The outcome, or None if the id is no longer stored.
        """
        tx = self.store.get(tx_id)
        if tx is None:
            return None
        if not may_act(tx, self.is_privileged(), self.high_value_threshold):
            return ClearingOutcome.LOCKED
        if self.rng.random() < self.failure_rate:
            return ClearingOutcome.FAILED
        return ClearingOutcome.CLEARED

    def resolve(self, ticket: ClearingTicket) -> ClearingTicket:
        """Resolve a submitted batch.

        Applies each outcome to the store, then removes exactly the cleared
        ids from the selection. If an id is also part of a later batch, the
        later resolution applies its own outcome on top of this one.

        Args:
            ticket: Ticket returned by ``clear_batch``.

        Returns:
            The same ticket, with outcomes filled in.
        """
        if ticket.resolved:
            return ticket

        for tx_id in ticket.ids:
            outcome = self.decide_outcome(tx_id)
            if outcome is None:
                logger.debug("Skipping %s: no longer in the store", tx_id)
                continue
            ticket.outcomes[tx_id] = outcome
            self.store.apply_outcome(tx_id, outcome)

        self.selection.remove_all(ticket.cleared_ids)
        ticket.resolved = True
        self._in_flight.pop(ticket.batch_id, None)

        summary = ticket.summary()
        logger.info(
            "Resolved clearing batch %d: %d cleared, %d failed, %d locked",
            ticket.batch_id,
            summary["cleared"],
            summary["failed"],
            summary["locked"],
            extra={"batch_id": ticket.batch_id, "extra_data": summary},
        )

        if self.on_resolved is not None:
            self.on_resolved(ticket)
        return ticket
