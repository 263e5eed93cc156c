"""Ledger session: the engine's intent and snapshot surface.

A LedgerSession owns the four pieces of mutable state (transaction store,
feed buffer, selection set, privilege flag) and is the single ordering
authority over them. Every intent, every scheduled callback it drives and
every snapshot runs under one re-entrant lock, so a presentation layer may
call in from another thread than the one pumping the scheduler.

Inbound intents: toggle_select, clear_one, clear_selected,
toggle_privilege, reveal_incoming. Outbound data: ``snapshot()``.
"""

import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np

from ledgerview.src.engine.clearing import ClearingTicket, ClearingWorkflow, RandomSource
from ledgerview.src.engine.compliance import (
    is_clearable,
    is_high_value,
    is_selectable,
    may_act,
)
from ledgerview.src.engine.errors import InvariantViolation
from ledgerview.src.engine.feed_buffer import FeedBuffer
from ledgerview.src.engine.scheduler import ScheduledTask, Scheduler
from ledgerview.src.engine.selection import SelectionSet
from ledgerview.src.engine.store import TransactionStore
from ledgerview.src.feed.producer import FeedProducer
from ledgerview.src.lib.config_loader import EngineSettings
from ledgerview.src.lib.display import format_amount, incoming_label
from ledgerview.src.lib.logging_config import get_logger
from ledgerview.src.models.enums import ClearingOutcome, TransactionStatus
from ledgerview.src.models.transaction import HIGH_VALUE_THRESHOLD, Transaction

logger = get_logger("session")

DEFAULT_FEED_INTERVAL = 2.0


@dataclass(frozen=True)
class TransactionRow:
    """Render-ready view of one transaction.

    Attributes:
        id: Transaction id.
        client_name: Client name.
        amount: Whole-unit amount.
        amount_display: Amount formatted as currency.
        status: Persisted status.
        timestamp: UTC timestamp.
        is_processing: True while a clearing batch holds the transaction.
        is_high_value: Amount above the compliance threshold.
        selected: Member of the selection set.
        selectable: Selection checkbox enabled.
        clearable: Per-row clear action enabled.
        compliance_locked: High-value while the privilege flag is off.
    """

    id: str
    client_name: str
    amount: int
    amount_display: str
    status: TransactionStatus
    timestamp: datetime
    is_processing: bool
    is_high_value: bool
    selected: bool
    selectable: bool
    clearable: bool
    compliance_locked: bool


@dataclass(frozen=True)
class LedgerSnapshot:
    """Immutable picture of the session at one instant."""

    rows: tuple[TransactionRow, ...]
    selected_ids: tuple[str, ...]
    incoming_count: int
    incoming_label: str | None
    privileged: bool
    in_flight: int

    @property
    def can_clear_selected(self) -> bool:
        return bool(self.selected_ids)

    def row(self, tx_id: str) -> TransactionRow | None:
        for row in self.rows:
            if row.id == tx_id:
                return row
        return None


class LedgerSession:
    """Interactive ledger view engine for one operator session.

    Attributes:
        session_id: Correlation id attached to session log records.
        store: Authoritative transaction store.
        buffer: Incoming transactions not yet revealed.
        selection: Ids selected for batch clearing.
        scheduler: Scheduler for the feed tick and clearing continuations.
        producer: Feed producer used for seeding and live arrivals.
        workflow: Clearing workflow bound to this session's state.
        stats: Running counters for reveals, submissions and outcomes.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        producer: FeedProducer | None = None,
        rng: RandomSource | None = None,
        privileged: bool = False,
        feed_interval_seconds: float = DEFAULT_FEED_INTERVAL,
        clearing_delay_seconds: float = 1.5,
        failure_rate: float = 0.10,
        high_value_threshold: int = HIGH_VALUE_THRESHOLD,
        strict_invariants: bool = False,
        session_id: str | None = None,
    ) -> None:
        """Initialize an empty session.

        Args:
            scheduler: Scheduler that owns the session's clock.
            producer: Feed producer. Defaults to an unseeded FeedProducer.
            rng: Random source for clearing failures.
            privileged: Initial value of the privilege flag.
            feed_interval_seconds: Cadence of the feed tick.
            clearing_delay_seconds: Fixed latency of each clearing batch.
            failure_rate: Probability of a random clearing failure.
            high_value_threshold: Amounts above this are compliance locked.
            strict_invariants: Raise InvariantViolation on consistency
                faults instead of pruning the selection.
            session_id: Correlation id. Defaults to a random UUID.
        """
        if feed_interval_seconds <= 0:
            msg = f"Feed interval must be positive, got {feed_interval_seconds}"
            raise ValueError(msg)

        self.session_id = session_id or str(uuid.uuid4())
        self.scheduler = scheduler
        self.producer = producer if producer is not None else FeedProducer()
        self.store = TransactionStore()
        self.buffer = FeedBuffer()
        self.selection = SelectionSet()
        self.feed_interval_seconds = feed_interval_seconds
        self.high_value_threshold = high_value_threshold
        self.strict_invariants = strict_invariants
        self._privileged = privileged
        self._lock = threading.RLock()
        self._feed_task: ScheduledTask | None = None
        self.stats: dict[str, int] = {
            "revealed": 0,
            "batches_submitted": 0,
            "submitted": 0,
            ClearingOutcome.CLEARED.value: 0,
            ClearingOutcome.FAILED.value: 0,
            ClearingOutcome.LOCKED.value: 0,
            "pruned": 0,
        }
        self.workflow = ClearingWorkflow(
            store=self.store,
            selection=self.selection,
            scheduler=scheduler,
            is_privileged=lambda: self._privileged,
            rng=rng,
            delay_seconds=clearing_delay_seconds,
            failure_rate=failure_rate,
            high_value_threshold=high_value_threshold,
            on_resolved=self._on_batch_resolved,
        )

    @classmethod
    def from_settings(cls, settings: EngineSettings, scheduler: Scheduler) -> "LedgerSession":
        """Build a session from loaded configuration.

        One seed drives both the producer and the clearing random source
        through independent child streams.

        Args:
            settings: Typed engine configuration.
            scheduler: Scheduler that owns the session's clock.

        Returns:
            A session seeded with ``settings.seed_count`` transactions.
        """
        producer_seq, clearing_seq = np.random.SeedSequence(settings.seed).spawn(2)
        session = cls(
            scheduler=scheduler,
            producer=FeedProducer(rng=np.random.default_rng(producer_seq)),
            rng=np.random.default_rng(clearing_seq),
            feed_interval_seconds=settings.feed_interval_seconds,
            clearing_delay_seconds=settings.clearing_delay_seconds,
            failure_rate=settings.failure_rate,
            high_value_threshold=settings.high_value_threshold,
            strict_invariants=settings.strict_invariants,
        )
        session.seed(settings.seed_count)
        return session

    def _log_extra(self, tx_id: str | None = None, **data: Any) -> dict[str, Any]:
        extra: dict[str, Any] = {"session_id": self.session_id}
        if tx_id is not None:
            extra["transaction_id"] = tx_id
        if data:
            extra["extra_data"] = data
        return extra

    def _reject(self, tx_id: str, intent: str, reason: str) -> None:
        logger.info(
            "Rejected %s for %s: %s",
            intent,
            tx_id,
            reason,
            extra=self._log_extra(tx_id, intent=intent, reason=reason),
        )

    # -- state accessors ---------------------------------------------------

    @property
    def privileged(self) -> bool:
        return self._privileged

    @property
    def incoming_count(self) -> int:
        with self._lock:
            return self.buffer.size()

    def is_selected(self, tx_id: str) -> bool:
        with self._lock:
            return tx_id in self.selection

    # -- setup -------------------------------------------------------------

    def seed(self, count: int) -> list[Transaction]:
        """Populate the store with ``count`` generated transactions."""
        with self._lock:
            seeded = self.producer.seed(count, self.scheduler.clock.now_utc())
            for tx in seeded:
                self.store.add(tx)
            return seeded

    def start_feed(self) -> ScheduledTask:
        """Start the periodic feed tick. Calling it again is a no-op."""
        with self._lock:
            if self._feed_task is None:
                self._feed_task = self.scheduler.call_every(
                    self.feed_interval_seconds,
                    self._on_feed_tick,
                    name="feed-tick",
                )
                logger.info(
                    "Feed started every %.1fs",
                    self.feed_interval_seconds,
                    extra=self._log_extra(),
                )
            return self._feed_task

    def _on_feed_tick(self) -> None:
        with self._lock:
            tx = self.producer.produce_one(self.scheduler.clock.now_utc())
            self.buffer.push(tx)
            logger.debug(
                "Buffered incoming transaction (%d waiting)",
                self.buffer.size(),
                extra=self._log_extra(tx.id),
            )

    # -- scheduler pumping -------------------------------------------------

    def run_pending(self) -> int:
        """Fire every due task under the session lock."""
        with self._lock:
            return self.scheduler.run_pending()

    def advance(self, seconds: float) -> int:
        """Advance a virtual clock under the session lock."""
        with self._lock:
            return self.scheduler.advance(seconds)

    # -- intents -----------------------------------------------------------

    def toggle_select(self, tx_id: str) -> bool:
        """Select or deselect a transaction.

        Deselecting is always allowed. Selecting requires a pending
        transaction that passes the compliance gate.

        Returns:
            True if the toggle was applied, False if it was rejected.
        """
        with self._lock:
            tx = self.store.get(tx_id)
            if tx is None:
                self._reject(tx_id, "toggle_select", "unknown transaction")
                return False
            if tx_id in self.selection:
                self.selection.discard(tx_id)
                return True
            if not tx.is_pending:
                self._reject(tx_id, "toggle_select", f"status is {tx.status.value}")
                return False
            if not may_act(tx, self._privileged, self.high_value_threshold):
                self._reject(tx_id, "toggle_select", "compliance lock")
                return False
            self.selection.add(tx_id)
            return True

    def clear_one(self, tx_id: str) -> ClearingTicket | None:
        """Submit a single transaction for clearing.

        Returns:
            The batch ticket, or None if the transaction is unknown, already
            cleared, already processing or compliance locked.
        """
        with self._lock:
            tx = self.store.get(tx_id)
            if tx is None:
                self._reject(tx_id, "clear_one", "unknown transaction")
                return None
            if not is_clearable(tx, self._privileged, self.high_value_threshold):
                if tx.is_cleared:
                    reason = "already cleared"
                elif tx.is_processing:
                    reason = "already processing"
                else:
                    reason = "compliance lock"
                self._reject(tx_id, "clear_one", reason)
                return None
            return self._submit([tx_id])

    def clear_selected(self) -> ClearingTicket | None:
        """Submit the current selection as one clearing batch.

        The selection is snapshotted at submission. Ids already inside an
        in-flight batch are left out. The selection itself is not emptied:
        the batch resolution drops the cleared ids.

        Returns:
            The batch ticket, or None if nothing was eligible.
        """
        with self._lock:
            batch = []
            for tx_id in self.selection.as_list():
                tx = self.store.get(tx_id)
                if tx is None or tx.is_processing:
                    continue
                batch.append(tx_id)
            if not batch:
                logger.info(
                    "Nothing to clear: %d selected, none eligible",
                    len(self.selection),
                    extra=self._log_extra(),
                )
                return None
            return self._submit(batch)

    def _submit(self, ids: list[str]) -> ClearingTicket:
        ticket = self.workflow.clear_batch(ids)
        self.stats["batches_submitted"] += 1
        self.stats["submitted"] += len(ticket.ids)
        return ticket

    def toggle_privilege(self) -> bool:
        """Flip the privilege flag.

        In-flight batches read the flag when they resolve, not when they
        were submitted.

        Returns:
            The new value of the flag.
        """
        with self._lock:
            self._privileged = not self._privileged
            logger.info(
                "Privilege flag %s",
                "enabled" if self._privileged else "disabled",
                extra=self._log_extra(privileged=self._privileged),
            )
            return self._privileged

    def reveal_incoming(self) -> int:
        """Merge every buffered transaction into the front of the store.

        Returns:
            Number of transactions revealed.
        """
        with self._lock:
            revealed = self.buffer.flush_into(self.store)
            if revealed:
                self.stats["revealed"] += len(revealed)
                logger.info(
                    "Revealed %d incoming transactions",
                    len(revealed),
                    extra=self._log_extra(count=len(revealed)),
                )
            self.check_consistency()
            return len(revealed)

    # -- consistency -------------------------------------------------------

    def _on_batch_resolved(self, ticket: ClearingTicket) -> None:
        for outcome, count in ticket.summary().items():
            self.stats[outcome] += count
        self.check_consistency()

    def check_consistency(self) -> list[str]:
        """Verify every selected id refers to a stored pending transaction.

        In strict mode a violation raises; otherwise the offending ids are
        pruned from the selection and logged.

        Returns:
            The ids pruned from the selection.

        Raises:
            InvariantViolation: In strict mode, when the selection is inconsistent.
        """
        with self._lock:
            offending = []
            for tx_id in self.selection.as_list():
                tx = self.store.get(tx_id)
                if tx is None or not tx.is_pending:
                    offending.append(tx_id)
            if not offending:
                return []

            if self.strict_invariants:
                msg = f"Selection references missing or non-pending transactions: {offending}"
                raise InvariantViolation(msg, offending)

            self.selection.remove_all(offending)
            self.stats["pruned"] += len(offending)
            logger.warning(
                "Pruned %d inconsistent ids from the selection",
                len(offending),
                extra=self._log_extra(ids=offending),
            )
            return offending

    # -- snapshot ----------------------------------------------------------

    def _row(self, tx: Transaction) -> TransactionRow:
        allowed = may_act(tx, self._privileged, self.high_value_threshold)
        return TransactionRow(
            id=tx.id,
            client_name=tx.client_name,
            amount=tx.amount,
            amount_display=format_amount(tx.amount),
            status=tx.status,
            timestamp=tx.timestamp,
            is_processing=tx.is_processing,
            is_high_value=is_high_value(tx.amount, self.high_value_threshold),
            selected=tx.id in self.selection,
            selectable=is_selectable(tx, self._privileged, self.high_value_threshold),
            clearable=is_clearable(tx, self._privileged, self.high_value_threshold),
            compliance_locked=not allowed,
        )

    def snapshot(self) -> LedgerSnapshot:
        """Capture a render-ready, immutable view of the session."""
        with self._lock:
            count = self.buffer.size()
            return LedgerSnapshot(
                rows=tuple(self._row(tx) for tx in self.store.list_all()),
                selected_ids=tuple(self.selection.as_list()),
                incoming_count=count,
                incoming_label=incoming_label(count),
                privileged=self._privileged,
                in_flight=self.workflow.in_flight,
            )
