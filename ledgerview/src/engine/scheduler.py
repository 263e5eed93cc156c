"""Clock abstraction and cooperative task scheduler.

Engine code never reads the system time or sleeps directly. It receives a
Clock and schedules deferred work on a Scheduler, which fires tasks in
``(due_time, sequence)`` order on the calling thread. Tests drive a
VirtualClock with ``Scheduler.advance``; the runner drives a SystemClock
with ``Scheduler.run_pending``.

Scheduled tasks cannot be cancelled.
"""

import heapq
import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from ledgerview.src.lib.logging_config import get_logger

logger = get_logger("scheduler")


class Clock(ABC):
    """Injectable time source.

    ``monotonic()`` drives scheduling; ``now_utc()`` stamps transactions.
    """

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds on a monotonically non-decreasing scale."""
        ...

    @abstractmethod
    def now_utc(self) -> datetime:
        """Current timezone-aware UTC time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the process clocks."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class VirtualClock(Clock):
    """Deterministic clock that only moves when told to.

    Args:
        start: Wall time corresponding to monotonic 0.0.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._start = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        self._elapsed = 0.0

    def monotonic(self) -> float:
        return self._elapsed

    def now_utc(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def advance(self, seconds: float) -> None:
        """Move the clock forward by ``seconds``."""
        if seconds < 0:
            msg = f"Cannot move the clock backwards by {seconds}s"
            raise ValueError(msg)
        self._elapsed += seconds

    def advance_to(self, when: float) -> None:
        """Move the clock forward to monotonic time ``when``."""
        if when > self._elapsed:
            self._elapsed = when


@dataclass(order=True)
class ScheduledTask:
    """A deferred callback waiting in the scheduler queue.

    Attributes:
        due: Monotonic time at which the task fires.
        sequence: Tie-breaker preserving scheduling order.
        name: Label used in logs.
        callback: Zero-argument callable to run.
        interval: Re-arm period for periodic tasks, None for one-shot.
        runs: Number of times the task has fired.
    """

    due: float
    sequence: int
    name: str = field(compare=False)
    callback: Callable[[], object] = field(compare=False, repr=False)
    interval: float | None = field(default=None, compare=False)
    runs: int = field(default=0, compare=False)

    @property
    def periodic(self) -> bool:
        return self.interval is not None


class Scheduler:
    """Single-threaded ordering authority for deferred callbacks.

    Attributes:
        clock: Time source used to compute due times.
    """

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self._queue: list[ScheduledTask] = []
        self._sequence = itertools.count()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._queue)

    def _push(self, task: ScheduledTask) -> ScheduledTask:
        with self._lock:
            heapq.heappush(self._queue, task)
        return task

    def call_later(
        self,
        delay: float,
        callback: Callable[[], object],
        name: str = "task",
    ) -> ScheduledTask:
        """Schedule a one-shot callback after ``delay`` seconds.

        Args:
            delay: Seconds from now, not negative.
            callback: Zero-argument callable.
            name: Label used in logs.

        Returns:
            The scheduled task.
        """
        if delay < 0:
            msg = f"Delay must not be negative, got {delay}"
            raise ValueError(msg)
        task = ScheduledTask(
            due=self.clock.monotonic() + delay,
            sequence=next(self._sequence),
            name=name,
            callback=callback,
        )
        return self._push(task)

    def call_every(
        self,
        interval: float,
        callback: Callable[[], object],
        name: str = "periodic",
        first_delay: float | None = None,
    ) -> ScheduledTask:
        """Schedule a callback on a fixed cadence.

        Args:
            interval: Seconds between runs, positive.
            callback: Zero-argument callable.
            name: Label used in logs.
            first_delay: Delay before the first run. Defaults to ``interval``.

        Returns:
            The scheduled task; it re-arms itself after every run.
        """
        if interval <= 0:
            msg = f"Interval must be positive, got {interval}"
            raise ValueError(msg)
        delay = interval if first_delay is None else first_delay
        task = ScheduledTask(
            due=self.clock.monotonic() + delay,
            sequence=next(self._sequence),
            name=name,
            callback=callback,
            interval=interval,
        )
        return self._push(task)

    def next_due(self) -> float | None:
        """Due time of the earliest queued task, or None when idle."""
        with self._lock:
            return self._queue[0].due if self._queue else None

    def _pop_due(self, until: float) -> ScheduledTask | None:
        with self._lock:
            if self._queue and self._queue[0].due <= until:
                return heapq.heappop(self._queue)
            return None

    def _fire(self, task: ScheduledTask) -> None:
        task.runs += 1
        if task.periodic:
            # Next run is anchored to the scheduled due time, not the firing time
            self._push(
                ScheduledTask(
                    due=task.due + task.interval,
                    sequence=next(self._sequence),
                    name=task.name,
                    callback=task.callback,
                    interval=task.interval,
                    runs=task.runs,
                ),
            )
        logger.debug("Firing %s due at %.3f", task.name, task.due)
        task.callback()

    def run_pending(self) -> int:
        """Run every task due at the current clock time.

        Returns:
            Number of callbacks fired.
        """
        fired = 0
        now = self.clock.monotonic()
        while (task := self._pop_due(now)) is not None:
            self._fire(task)
            fired += 1
        return fired

    def advance(self, seconds: float) -> int:
        """Advance a VirtualClock, firing tasks in due order along the way.

        The clock is moved to each task's due time before it fires, so
        callbacks observe the time they were scheduled for.

        Args:
            seconds: Seconds to advance, not negative.

        Returns:
            Number of callbacks fired.

        Raises:
            TypeError: If the scheduler is not driven by a VirtualClock.
        """
        if not isinstance(self.clock, VirtualClock):
            msg = "advance() requires a VirtualClock"
            raise TypeError(msg)
        if seconds < 0:
            msg = f"Cannot advance by a negative duration, got {seconds}"
            raise ValueError(msg)

        target = self.clock.monotonic() + seconds
        fired = 0
        while (task := self._pop_due(target)) is not None:
            self.clock.advance_to(task.due)
            self._fire(task)
            fired += 1
        self.clock.advance_to(target)
        return fired
