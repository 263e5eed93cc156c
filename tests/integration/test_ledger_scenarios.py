"""Integration test — end-to-end ledger scenarios on a virtual clock.

Each scenario drives a full LedgerSession (store, feed buffer, selection,
compliance gate, clearing workflow) through the intent surface and checks
the resulting snapshots.
"""

import numpy as np
import pytest


def _assert_selection_consistent(session) -> None:
    for tx_id in session.snapshot().selected_ids:
        tx = session.store.get(tx_id)
        assert tx is not None, f"{tx_id} selected but not stored"
        assert tx.is_pending, f"{tx_id} selected but {tx.status}"


class TestClearingScenarios:
    """Single-transaction clearing with deterministic random sources."""

    def test_clear_succeeds_with_draw_half(self, session_with, fixed_random) -> None:
        """amount=100 pending: processing right after submission, cleared after 1.5s."""
        session = session_with([("TX-1", 100, "pending")], rng=fixed_random(0.5))
        session.toggle_select("TX-1")

        session.clear_selected()
        assert session.snapshot().row("TX-1").is_processing is True
        assert session.snapshot().row("TX-1").clearable is False

        session.advance(1.5)
        row = session.snapshot().row("TX-1")
        assert row.status.value == "cleared"
        assert row.is_processing is False
        assert row.selected is False

    def test_clear_fails_with_low_draw(self, session_with, fixed_random) -> None:
        """A draw of 0.05 leaves the row pending, unlocked and still selected."""
        session = session_with([("TX-1", 100, "pending")], rng=fixed_random(0.05))
        session.toggle_select("TX-1")

        session.clear_selected()
        session.advance(1.5)

        row = session.snapshot().row("TX-1")
        assert row.status.value == "pending"
        assert row.is_processing is False
        assert row.selected is True
        assert row.clearable is True

    def test_cleared_is_permanent(self, session_with, fixed_random) -> None:
        """Once cleared, a row stays cleared, unselected and idle."""
        session = session_with([("TX-1", 100, "pending")], rng=fixed_random(0.5))
        session.clear_one("TX-1")
        session.advance(1.5)

        session.toggle_privilege()
        assert session.toggle_select("TX-1") is False
        assert session.clear_one("TX-1") is None
        session.advance(10)

        row = session.snapshot().row("TX-1")
        assert row.status.value == "cleared"
        assert row.is_processing is False
        assert row.selected is False


class TestComplianceScenarios:
    """High-value transactions and the privilege flag."""

    @pytest.mark.parametrize("draw", [0.0, 0.05, 0.5, 0.999])
    def test_high_value_never_selectable_or_clearable_unprivileged(
        self, session_with, fixed_random, draw: float,
    ) -> None:
        """amount > 10000 with privilege off can be neither selected nor cleared."""
        session = session_with([("TX-1", 15_000, "pending")], rng=fixed_random(draw))

        assert session.toggle_select("TX-1") is False
        assert session.clear_one("TX-1") is None
        assert session.clear_selected() is None
        session.advance(5)

        row = session.snapshot().row("TX-1")
        assert row.compliance_locked
        assert row.status.value == "pending"

    def test_privilege_enabled_mid_flight(self, session_with, fixed_random) -> None:
        """Turning privilege on while a high-value batch is processing lets it clear."""
        session = session_with([("TX-1", 15_000, "pending")], rng=fixed_random(0.5))
        session.toggle_privilege()
        session.toggle_select("TX-1")
        session.toggle_privilege()

        # Submitted while unprivileged: the gate decides at resolution time
        ticket = session.clear_selected()
        session.advance(0.75)
        assert session.snapshot().row("TX-1").is_processing is True
        session.toggle_privilege()
        session.advance(0.75)

        assert ticket.outcomes["TX-1"].value == "cleared"
        assert session.store.get("TX-1").is_cleared

    def test_privilege_disabled_mid_flight_locks(self, session_with, fixed_random) -> None:
        """Turning privilege off while in flight forces the Locked outcome."""
        session = session_with(
            [("TX-1", 15_000, "pending")], rng=fixed_random(0.5), privileged=True,
        )
        ticket = session.clear_one("TX-1")
        session.toggle_privilege()
        session.advance(1.5)

        assert ticket.outcomes["TX-1"].value == "locked"
        tx = session.store.get("TX-1")
        assert tx.is_pending and not tx.is_processing


class TestFeedScenarios:
    """Buffered arrivals and reveal."""

    def test_three_arrivals_then_reveal(self, make_session) -> None:
        """Three buffered arrivals become the first three store rows on reveal."""
        session = make_session()
        session.seed(10)
        session.start_feed()

        session.advance(6.0)
        snap = session.snapshot()
        assert snap.incoming_count == 3
        assert len(snap.rows) == 10
        buffered = [tx.id for tx in session.buffer.snapshot()]

        assert session.reveal_incoming() == 3

        after = session.snapshot()
        assert after.incoming_count == 0
        assert [row.id for row in after.rows[:3]] == buffered
        # Newest arrival first
        assert buffered == ["TX-100013", "TX-100012", "TX-100011"]

    def test_arrivals_do_not_disturb_in_flight_batch(self, session_with) -> None:
        """Feed ticks during a clearing batch neither join it nor reorder the view."""
        session = session_with([("TX-1", 100, "pending"), ("TX-2", 120, "pending")])
        session.start_feed()

        session.toggle_select("TX-1")
        ticket = session.clear_selected()
        view_before = [row.id for row in session.snapshot().rows]

        session.advance(1.5)
        assert ticket.resolved
        assert ticket.ids == ("TX-1",)
        assert [row.id for row in session.snapshot().rows] == view_before

        session.advance(0.5)
        assert session.incoming_count == 1
        assert [row.id for row in session.snapshot().rows] == view_before


class TestLongRunProperties:
    """Randomised sessions checked against the global invariants."""

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_invariants_hold_over_random_operations(self, scheduler, seed: int) -> None:
        """Ids stay unique and the selection stays consistent under random intents."""
        from ledgerview.src.engine.session import LedgerSession
        from ledgerview.src.lib.config_loader import EngineSettings

        session = LedgerSession.from_settings(
            EngineSettings(seed_count=30, seed=seed, strict_invariants=True), scheduler,
        )
        session.start_feed()
        ops = np.random.default_rng(seed + 100)

        for _ in range(300):
            ids = session.store.ids()
            choice = int(ops.integers(0, 6))
            if choice == 0:
                session.toggle_select(ids[int(ops.integers(0, len(ids)))])
            elif choice == 1:
                session.clear_one(ids[int(ops.integers(0, len(ids)))])
            elif choice == 2:
                session.clear_selected()
            elif choice == 3:
                session.toggle_privilege()
            elif choice == 4:
                session.reveal_incoming()
            else:
                session.advance(float(ops.choice([0.25, 0.5, 1.0, 1.5])))

            ids = session.store.ids()
            assert len(ids) == len(set(ids))
            _assert_selection_consistent(session)
            for row in session.snapshot().rows:
                if row.status.value == "cleared":
                    assert not row.selected

        session.advance(10)
        assert session.workflow.in_flight == 0
        assert all(not tx.is_processing for tx in session.store.list_all())


class TestConcurrentIntents:
    """Intents from one thread while another thread pumps the scheduler."""

    def test_intents_while_scheduler_runs_in_another_thread(self, scheduler) -> None:
        """Concurrent intents and scheduler callbacks keep every invariant."""
        import threading
        import time

        from ledgerview.src.engine.session import LedgerSession
        from ledgerview.src.lib.config_loader import EngineSettings

        session = LedgerSession.from_settings(
            EngineSettings(seed_count=40, seed=7, strict_invariants=True), scheduler,
        )
        session.start_feed()
        errors: list[Exception] = []

        def pump() -> None:
            try:
                for _ in range(400):
                    session.advance(0.25)
                    time.sleep(0.0005)
            except Exception as e:
                errors.append(e)

        pumper = threading.Thread(target=pump, name="scheduler-pump")
        pumper.start()
        ops = np.random.default_rng(11)
        try:
            for _ in range(500):
                rows = session.snapshot().rows
                tx_id = rows[int(ops.integers(0, len(rows)))].id
                choice = int(ops.integers(0, 5))
                if choice == 0:
                    session.toggle_select(tx_id)
                elif choice == 1:
                    session.clear_one(tx_id)
                elif choice == 2:
                    session.clear_selected()
                elif choice == 3:
                    session.reveal_incoming()
                else:
                    session.toggle_privilege()
        finally:
            pumper.join(timeout=30)

        assert not pumper.is_alive()
        assert errors == []
        assert session.scheduler.clock.monotonic() == pytest.approx(100.0)
        session.advance(5)
        assert session.check_consistency() == []
        ids = session.store.ids()
        assert len(ids) == len(set(ids))
        _assert_selection_consistent(session)
        assert all(not tx.is_processing for tx in session.store.list_all())
