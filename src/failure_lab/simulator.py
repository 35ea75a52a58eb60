"""Thread-pool exhaustion, hang and CPU saturation simulator.

A :class:`LoadSimulator` owns one exclusive :class:`QueuedLock` and keeps
track of which callers are waiting for it, which caller holds it, and which
callers are hanging without it. Every operation occupies the calling worker
thread for the requested duration, which is how a bounded request pool gets
exhausted on purpose.

Cancellation is cooperative: each in-flight caller owns a
:class:`threading.Event` that is checked inside every wait, so
:meth:`LoadSimulator.cancel` and :meth:`LoadSimulator.cancel_all` unwind
callers promptly through the normal cleanup path.
"""

from __future__ import annotations

import math
import random
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .exceptions import CallerInFlightError
from .logging import get_logger

logger = get_logger(__name__)

# Upper bound for a single sleep inside the hang loop
HANG_SLEEP_SLICE_SECONDS = 10.0
CPU_PROGRESS_LOG_EVERY = 1_000_000
_LOCK_POLL_SECONDS = 0.05


def current_caller_id() -> str:
    """Return an identifier for the calling thread, unique among live threads."""
    thread = threading.current_thread()
    return f"{thread.name}-{thread.ident}"


class QueuedLock:
    """Exclusive, non-reentrant lock whose state can be inspected by anyone.

    ``locked``, ``has_queued_threads`` and ``queue_length`` read plain
    attributes and never wait on the internal mutex, so observers are not
    held up by contention on the lock itself.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._held = False
        self._waiters = 0

    def acquire(self, cancelled: threading.Event | None = None) -> bool:
        """Block until the lock is acquired or ``cancelled`` is set.

        Returns:
            True when the lock was acquired, False when cancelled first.
        """
        with self._cond:
            if not self._held:
                self._held = True
                return True
            self._waiters += 1
            try:
                while self._held:
                    if cancelled is not None and cancelled.is_set():
                        return False
                    self._cond.wait(_LOCK_POLL_SECONDS)
                self._held = True
                return True
            finally:
                self._waiters -= 1

    def release(self) -> None:
        with self._cond:
            if not self._held:
                raise RuntimeError("release of an unlocked QueuedLock")
            self._held = False
            self._cond.notify()

    def wake_waiters(self) -> None:
        """Wake every queued waiter so it re-checks its cancellation event."""
        with self._cond:
            self._cond.notify_all()

    def locked(self) -> bool:
        return self._held

    def has_queued_threads(self) -> bool:
        return self._waiters > 0

    def queue_length(self) -> int:
        return self._waiters


@dataclass(frozen=True)
class BlockResult:
    """Outcome of a :meth:`LoadSimulator.block_for` call."""

    caller_id: str
    duration_seconds: float
    internal: bool = False
    interrupted: bool = False
    held_seconds: float = 0.0


@dataclass(frozen=True)
class HangResult:
    """Outcome of a :meth:`LoadSimulator.hang_for` call."""

    caller_id: str
    duration_seconds: float
    completed_at: datetime
    interrupted: bool = False


@dataclass(frozen=True)
class CpuBurnResult:
    """Outcome of a :meth:`LoadSimulator.burn_cpu_for` call."""

    caller_id: str
    iterations: int
    elapsed_seconds: float
    checksum: int


@dataclass(frozen=True)
class ContentionSnapshot:
    """Point-in-time view of lock contention."""

    total_threads: int
    waiting: tuple[str, ...]
    holding: tuple[str, ...]
    hanging: tuple[str, ...]
    lock_held: bool
    has_queued_threads: bool
    queue_length: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class ContentionState:
    """Registries of callers waiting for, holding, or hanging beside the lock.

    All transitions happen under a short internal guard which is never the
    simulated lock, so readers only ever wait for a dictionary update.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self.waiting: dict[str, threading.Thread] = {}
        self.holding: dict[str, threading.Thread] = {}
        self.hanging: dict[str, threading.Thread] = {}

    def enter_waiting(self, caller_id: str) -> None:
        with self._guard:
            self.waiting[caller_id] = threading.current_thread()

    def promote(self, caller_id: str) -> None:
        """Move ``caller_id`` from waiting to holding in one step."""
        with self._guard:
            thread = self.waiting.pop(caller_id, threading.current_thread())
            self.holding[caller_id] = thread

    def enter_hanging(self, caller_id: str) -> None:
        with self._guard:
            self.hanging[caller_id] = threading.current_thread()

    def discard(self, caller_id: str) -> None:
        """Forget ``caller_id`` in every registry."""
        with self._guard:
            self.waiting.pop(caller_id, None)
            self.holding.pop(caller_id, None)
            self.hanging.pop(caller_id, None)

    def ids(self) -> tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]:
        with self._guard:
            return (
                tuple(sorted(self.waiting)),
                tuple(sorted(self.holding)),
                tuple(sorted(self.hanging)),
            )


class LoadSimulator:
    """Simulates worker-thread starvation and CPU starvation on demand."""

    def __init__(self) -> None:
        self.lock = QueuedLock()
        self.state = ContentionState()
        self._cancel_events: dict[str, threading.Event] = {}
        self._events_guard = threading.Lock()
        self._closed = False

    def block_for(
        self,
        duration_seconds: float,
        caller_id: str | None = None,
        *,
        internal: bool = False,
    ) -> BlockResult:
        """Queue for the shared lock, then hold it for ``duration_seconds``.

        The calling thread is unavailable for other work while it waits and
        while it holds the lock.
        """
        caller_id = caller_id or current_caller_id()
        cancelled = self._register(caller_id)
        held_seconds = 0.0
        interrupted = False
        logger.warning(
            "simulator.block.start",
            caller_id=caller_id,
            duration_seconds=duration_seconds,
            internal=internal,
        )
        self.state.enter_waiting(caller_id)
        try:
            if not self.lock.acquire(cancelled):
                interrupted = True
                logger.error("simulator.block.interrupted_waiting", caller_id=caller_id)
            else:
                self.state.promote(caller_id)
                acquired_at = time.monotonic()
                try:
                    logger.info(
                        "simulator.block.acquired",
                        caller_id=caller_id,
                        duration_seconds=duration_seconds,
                    )
                    if cancelled.wait(duration_seconds):
                        interrupted = True
                        logger.error("simulator.block.interrupted_holding", caller_id=caller_id)
                    else:
                        logger.info("simulator.block.releasing", caller_id=caller_id)
                finally:
                    held_seconds = time.monotonic() - acquired_at
                    self.state.discard(caller_id)
                    self.lock.release()
        finally:
            self.state.discard(caller_id)
            self._unregister(caller_id)

        return BlockResult(
            caller_id=caller_id,
            duration_seconds=duration_seconds,
            internal=internal,
            interrupted=interrupted,
            held_seconds=held_seconds,
        )

    def hang_for(self, duration_seconds: float, caller_id: str | None = None) -> HangResult:
        """Keep the calling thread busy for ``duration_seconds`` without the lock."""
        caller_id = caller_id or current_caller_id()
        cancelled = self._register(caller_id)
        interrupted = False
        started = time.monotonic()
        deadline = started + duration_seconds
        logger.warning("simulator.hang.start", caller_id=caller_id, duration_seconds=duration_seconds)
        self.state.enter_hanging(caller_id)
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                if cancelled.wait(min(HANG_SLEEP_SLICE_SECONDS, remaining)):
                    interrupted = True
                    logger.error(
                        "simulator.hang.interrupted",
                        caller_id=caller_id,
                        elapsed_seconds=round(time.monotonic() - started, 3),
                    )
                    break
                logger.debug(
                    "simulator.hang.progress",
                    caller_id=caller_id,
                    elapsed_seconds=int(time.monotonic() - started),
                )
        finally:
            self.state.discard(caller_id)
            self._unregister(caller_id)

        logger.info("simulator.hang.complete", caller_id=caller_id, interrupted=interrupted)
        return HangResult(
            caller_id=caller_id,
            duration_seconds=duration_seconds,
            completed_at=datetime.now(UTC),
            interrupted=interrupted,
        )

    def burn_cpu_for(
        self,
        duration_seconds: float,
        caller_id: str | None = None,
        rng: random.Random | None = None,
    ) -> CpuBurnResult:
        """Spin on floating point work until ``duration_seconds`` have passed."""
        caller_id = caller_id or current_caller_id()
        rng = rng or random.Random()  # noqa: S311
        logger.warning("simulator.cpu.start", caller_id=caller_id, duration_seconds=duration_seconds)

        started = time.monotonic()
        deadline = started + duration_seconds
        iterations = 0
        accumulator = 0.0
        while time.monotonic() < deadline:
            accumulator += math.sqrt(rng.random() * 1_000_000)
            iterations += 1
            if iterations % CPU_PROGRESS_LOG_EVERY == 0:
                logger.debug(
                    "simulator.cpu.progress",
                    caller_id=caller_id,
                    iterations=iterations,
                    elapsed_seconds=int(time.monotonic() - started),
                )

        elapsed = time.monotonic() - started
        logger.info(
            "simulator.cpu.complete",
            caller_id=caller_id,
            iterations=iterations,
            elapsed_seconds=round(elapsed, 3),
        )
        return CpuBurnResult(
            caller_id=caller_id,
            iterations=iterations,
            elapsed_seconds=elapsed,
            checksum=int(accumulator),
        )

    def snapshot_contention(self) -> ContentionSnapshot:
        """Describe current contention without touching the simulated lock."""
        waiting, holding, hanging = self.state.ids()
        return ContentionSnapshot(
            total_threads=threading.active_count(),
            waiting=waiting,
            holding=holding,
            hanging=hanging,
            lock_held=self.lock.locked(),
            has_queued_threads=self.lock.has_queued_threads(),
            queue_length=self.lock.queue_length(),
        )

    def cancel(self, caller_id: str) -> bool:
        """Ask one in-flight caller to stop. Returns False if it is not running."""
        with self._events_guard:
            event = self._cancel_events.get(caller_id)
        if event is None:
            return False
        event.set()
        self.lock.wake_waiters()
        logger.info("simulator.cancel", caller_id=caller_id)
        return True

    def cancel_all(self) -> int:
        """Ask every in-flight caller to stop and return how many were signalled."""
        with self._events_guard:
            events = list(self._cancel_events.values())
        for event in events:
            event.set()
        self.lock.wake_waiters()
        if events:
            logger.info("simulator.cancel_all", callers=len(events))
        return len(events)

    def close(self) -> int:
        """Cancel every in-flight caller and make later calls return interrupted at once."""
        with self._events_guard:
            self._closed = True
        return self.cancel_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def _register(self, caller_id: str) -> threading.Event:
        event = threading.Event()
        with self._events_guard:
            if caller_id in self._cancel_events:
                raise CallerInFlightError(caller_id)
            if self._closed:
                event.set()
            self._cancel_events[caller_id] = event
        return event

    def _unregister(self, caller_id: str) -> None:
        with self._events_guard:
            self._cancel_events.pop(caller_id, None)
