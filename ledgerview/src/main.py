"""Headless runner for the ledger view engine.

Seeds a ledger session, starts the 2-second feed, and pumps the scheduler
from the monotonic clock until the duration elapses or SIGTERM/SIGINT
arrives. With ``--auto-clear`` it plays the operator: on every feed tick
it reveals incoming transactions and submits every selectable pending
transaction for clearing.

Logs go to stderr as JSON; the final run summary is printed to stdout.

Usage:
    ledgerview [OPTIONS]

Examples:
    ledgerview --duration 30 --auto-clear
    ledgerview --config config/ledgerview.yaml --seed 42 --privileged
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ledgerview.src.engine.compliance import is_selectable
from ledgerview.src.engine.scheduler import Scheduler, SystemClock
from ledgerview.src.engine.session import LedgerSession
from ledgerview.src.lib.config_loader import (
    ConfigWatcher,
    EngineSettings,
    default_config,
    load_config,
)
from ledgerview.src.lib.logging_config import LOG_LEVELS, get_logger, setup_logging

logger = get_logger("main")

_LOCAL_CONFIG_PATH = Path("config/ledgerview.yaml")
_STATS_INTERVAL_SECONDS = 5.0
_IDLE_SLEEP_SECONDS = 0.01


@dataclass
class RunSummary:
    """Outcome of one runner session, printed as JSON to stdout.

    Attributes:
        session_id: Correlation id of the session.
        duration_seconds: Wall-clock runtime.
        transactions: Transactions in the store at shutdown.
        status_counts: Store transactions per status.
        incoming_waiting: Transactions still buffered, never revealed.
        revealed: Transactions merged from the feed buffer.
        batches_submitted: Clearing batches submitted.
        submitted: Transactions submitted across all batches.
        cleared: Transactions cleared.
        failed: Clearing attempts that failed randomly.
        locked: Clearing attempts blocked by compliance.
        privileged: Privilege flag at shutdown.
    """

    session_id: str
    duration_seconds: float
    transactions: int
    status_counts: dict[str, int]
    incoming_waiting: int
    revealed: int
    batches_submitted: int
    submitted: int
    cleared: int
    failed: int
    locked: int
    privileged: bool
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def from_session(cls, session: LedgerSession, duration: float) -> RunSummary:
        return cls(
            session_id=session.session_id,
            duration_seconds=round(duration, 2),
            transactions=len(session.store),
            status_counts=session.store.count_by_status(),
            incoming_waiting=session.incoming_count,
            revealed=session.stats["revealed"],
            batches_submitted=session.stats["batches_submitted"],
            submitted=session.stats["submitted"],
            cleared=session.stats["cleared"],
            failed=session.stats["failed"],
            locked=session.stats["locked"],
            privileged=session.privileged,
        )

    def to_json(self) -> str:
        """Serialize the summary to a JSON string."""
        return json.dumps(asdict(self), indent=2)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the runner.

    Args:
        argv: Command-line arguments. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Run a headless interactive ledger session.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  ledgerview --duration 30 --auto-clear\n"
            "  ledgerview --config config/ledgerview.yaml --seed 42 --privileged\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML config file (default: config/ledgerview.yaml if present)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=10.0,
        help="Seconds to run before shutting down (default: 10)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed overriding the config (default: from config)",
    )
    parser.add_argument(
        "--privileged",
        action="store_true",
        help="Start with the privilege flag enabled",
    )
    parser.add_argument(
        "--auto-clear",
        action="store_true",
        help="Reveal and clear every eligible pending transaction on each feed tick",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=LOG_LEVELS,
        help="Logging level overriding the config",
    )
    return parser.parse_args(argv)


def _resolve_config(config_arg: str | None) -> tuple[dict[str, Any], Path | None]:
    """Load the config file, or fall back to built-in defaults."""
    if config_arg is not None:
        path = Path(config_arg)
        return load_config(path), path
    if _LOCAL_CONFIG_PATH.exists():
        return load_config(_LOCAL_CONFIG_PATH), _LOCAL_CONFIG_PATH
    return default_config(), None


def auto_clear(session: LedgerSession) -> None:
    """Operator stand-in: reveal incoming, select eligible rows, clear them."""
    session.reveal_incoming()
    for tx in session.store.list_all():
        if tx.is_processing or session.is_selected(tx.id):
            continue
        if is_selectable(tx, session.privileged, session.high_value_threshold):
            session.toggle_select(tx.id)
    session.clear_selected()


def apply_reload(session: LedgerSession, config: dict[str, Any]) -> bool:
    """Apply the hot-reloadable part of a new config to a running session.

    Only the clearing failure rate can change at runtime; the other
    settings shape the session when it is built.

    Returns:
        True if the session was changed.
    """
    new_rate = config["clearing"]["failure_rate"]
    if new_rate == session.workflow.failure_rate:
        return False
    session.workflow.failure_rate = new_rate
    logger.info(
        "Failure rate updated to %.2f",
        new_rate,
        extra={"session_id": session.session_id},
    )
    return True


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the ledger runner.

    Args:
        argv: Command-line arguments. Defaults to sys.argv[1:].

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = parse_args(argv)
    setup_logging(level=args.log_level or "INFO")

    try:
        config, config_path = _resolve_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        return 1

    if args.seed is not None:
        config["runtime"]["seed"] = args.seed
    settings = EngineSettings.from_config(config)
    if args.log_level is None:
        setup_logging(level=settings.log_level)

    scheduler = Scheduler(SystemClock())
    session = LedgerSession.from_settings(settings, scheduler)
    if args.privileged:
        session.toggle_privilege()
    session.start_feed()
    if args.auto_clear:
        # Same cadence as the feed, scheduled after it so each pass sees the new arrival
        scheduler.call_every(
            settings.feed_interval_seconds,
            lambda: auto_clear(session),
            name="auto-clear",
        )

    watcher = None
    if config_path is not None:
        watcher = ConfigWatcher(config_path)
        watcher.get_config()

    logger.info(
        "Ledger session started with %d transactions",
        len(session.store),
        extra={"session_id": session.session_id},
    )

    running = True

    def _shutdown_handler(signum: int, frame: object) -> None:
        nonlocal running
        logger.info("Received shutdown signal %d, stopping...", signum)
        running = False

    previous_handlers = {
        signum: signal.signal(signum, _shutdown_handler)
        for signum in (signal.SIGTERM, signal.SIGINT)
    }

    start_time = time.monotonic()
    last_stats_time = start_time

    try:
        while running and time.monotonic() - start_time < args.duration:
            if session.run_pending() == 0:
                time.sleep(_IDLE_SLEEP_SECONDS)

            if watcher is not None and (reloaded := watcher.poll()) is not None:
                apply_reload(session, reloaded)

            now = time.monotonic()
            if now - last_stats_time >= _STATS_INTERVAL_SECONDS:
                logger.info(
                    "Stats: %d transactions, %d incoming, %d batches in flight",
                    len(session.store),
                    session.incoming_count,
                    session.workflow.in_flight,
                    extra={
                        "session_id": session.session_id,
                        "extra_data": dict(session.stats),
                    },
                )
                last_stats_time = now
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    duration = time.monotonic() - start_time
    summary = RunSummary.from_session(session, duration)
    logger.info(
        "Ledger session finished after %.1fs",
        duration,
        extra={"session_id": session.session_id},
    )
    print(summary.to_json())
    return 0


if __name__ == "__main__":
    sys.exit(main())
