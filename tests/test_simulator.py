"""Tests for the load simulator and its queued lock."""

from __future__ import annotations

import math
import random
import threading
import time
from typing import Any

import pytest

from failure_lab.exceptions import CallerInFlightError
from failure_lab.simulator import LoadSimulator, QueuedLock, current_caller_id

HOLD = 0.3


class TestQueuedLock:
    """Test the inspectable exclusive lock."""

    def test_acquire_release_reports_state(self) -> None:
        lock = QueuedLock()
        assert not lock.locked()
        assert lock.acquire()
        assert lock.locked()
        assert lock.queue_length() == 0
        lock.release()
        assert not lock.locked()

    def test_release_unlocked_raises(self) -> None:
        with pytest.raises(RuntimeError):
            QueuedLock().release()

    def test_waiters_are_counted_and_cancellable(self, wait_until: Any) -> None:
        lock = QueuedLock()
        lock.acquire()
        cancelled = threading.Event()
        outcome: list[bool] = []
        waiter = threading.Thread(target=lambda: outcome.append(lock.acquire(cancelled)), daemon=True)
        waiter.start()

        assert wait_until(lock.has_queued_threads)
        assert lock.queue_length() == 1

        cancelled.set()
        lock.wake_waiters()
        waiter.join(timeout=2)

        assert outcome == [False]
        assert lock.queue_length() == 0
        assert lock.locked()
        lock.release()


def test_block_for_holds_lock_for_duration(simulator: LoadSimulator) -> None:
    """The lock is held roughly for the requested time and free on return."""
    started = time.monotonic()
    result = simulator.block_for(HOLD, "caller-1")
    elapsed = time.monotonic() - started

    assert result.caller_id == "caller-1"
    assert result.duration_seconds == HOLD
    assert not result.interrupted
    assert elapsed >= HOLD
    assert result.held_seconds == pytest.approx(HOLD, abs=0.2)
    assert not simulator.lock.locked()
    snapshot = simulator.snapshot_contention()
    assert snapshot.waiting == ()
    assert snapshot.holding == ()


def test_block_for_zero_seconds(simulator: LoadSimulator) -> None:
    result = simulator.block_for(0, "quick")
    assert not result.interrupted
    assert not simulator.lock.locked()


def test_block_for_defaults_caller_to_current_thread(simulator: LoadSimulator) -> None:
    result = simulator.block_for(0)
    assert result.caller_id == current_caller_id()


def test_block_for_marks_internal(simulator: LoadSimulator) -> None:
    assert simulator.block_for(0, "fan", internal=True).internal is True


def test_five_concurrent_callers_queue_behind_one_holder(
    simulator: LoadSimulator,
    start_thread: Any,
    wait_until: Any,
) -> None:
    """One caller holds the lock while the other four wait in the queue."""
    results: list[Any] = []
    threads = [
        start_thread(lambda i=i: results.append(simulator.block_for(HOLD, f"worker-{i}")))
        for i in range(5)
    ]

    def _saturated() -> bool:
        snapshot = simulator.snapshot_contention()
        return len(snapshot.holding) == 1 and len(snapshot.waiting) == 4 and snapshot.queue_length == 4

    assert wait_until(_saturated, timeout=2)
    snapshot = simulator.snapshot_contention()
    assert snapshot.lock_held
    assert snapshot.has_queued_threads
    assert set(snapshot.waiting).isdisjoint(snapshot.holding)

    for thread in threads:
        thread.join(timeout=5)

    assert len(results) == 5
    assert not any(result.interrupted for result in results)
    final = simulator.snapshot_contention()
    assert final.holding == ()
    assert final.waiting == ()
    assert not final.lock_held
    assert not final.has_queued_threads
    assert final.queue_length == 0


def test_registries_never_overlap_under_contention(simulator: LoadSimulator, start_thread: Any) -> None:
    """Sampled snapshots never show two holders or a caller in both registries."""
    threads = [start_thread(simulator.block_for, 0.05, f"c-{i}") for i in range(6)]
    violations = []
    while any(thread.is_alive() for thread in threads):
        snapshot = simulator.snapshot_contention()
        if len(snapshot.holding) > 1 or not set(snapshot.waiting).isdisjoint(snapshot.holding):
            violations.append(snapshot)
    assert violations == []


def test_snapshot_does_not_block_while_lock_contended(
    simulator: LoadSimulator,
    start_thread: Any,
    wait_until: Any,
) -> None:
    for i in range(3):
        start_thread(simulator.block_for, 5, f"busy-{i}")
    assert wait_until(lambda: simulator.lock.queue_length() == 2)

    started = time.monotonic()
    snapshot = simulator.snapshot_contention()
    assert time.monotonic() - started < 0.1
    assert snapshot.lock_held
    assert snapshot.total_threads >= 4


def test_cancel_while_waiting_cleans_up(simulator: LoadSimulator, start_thread: Any, wait_until: Any) -> None:
    results: dict[str, Any] = {}
    start_thread(lambda: results.setdefault("holder", simulator.block_for(10, "holder")))
    assert wait_until(lambda: simulator.snapshot_contention().holding == ("holder",))
    waiter = start_thread(lambda: results.setdefault("waiter", simulator.block_for(10, "waiter")))
    assert wait_until(lambda: simulator.snapshot_contention().waiting == ("waiter",))

    assert simulator.cancel("waiter")
    waiter.join(timeout=2)

    assert results["waiter"].interrupted
    assert results["waiter"].held_seconds == 0.0
    snapshot = simulator.snapshot_contention()
    assert snapshot.waiting == ()
    assert snapshot.holding == ("holder",)
    assert snapshot.queue_length == 0


def test_cancel_while_holding_releases_lock(simulator: LoadSimulator, start_thread: Any, wait_until: Any) -> None:
    results: list[Any] = []
    holder = start_thread(lambda: results.append(simulator.block_for(10, "holder")))
    assert wait_until(simulator.lock.locked)

    started = time.monotonic()
    assert simulator.cancel("holder")
    holder.join(timeout=2)

    assert time.monotonic() - started < 1
    assert results[0].interrupted
    assert not simulator.lock.locked()
    assert simulator.snapshot_contention().holding == ()


def test_cancel_unknown_caller_returns_false(simulator: LoadSimulator) -> None:
    assert simulator.cancel("nobody") is False


def test_cancel_all_unwinds_every_caller(simulator: LoadSimulator, start_thread: Any, wait_until: Any) -> None:
    threads = [start_thread(simulator.block_for, 10, f"b-{i}") for i in range(3)]
    threads.append(start_thread(simulator.hang_for, 10, "hanger"))
    assert wait_until(lambda: simulator.lock.queue_length() == 2 and bool(simulator.snapshot_contention().hanging))

    assert simulator.cancel_all() == 4
    for thread in threads:
        thread.join(timeout=2)
        assert not thread.is_alive()

    snapshot = simulator.snapshot_contention()
    assert (snapshot.waiting, snapshot.holding, snapshot.hanging) == ((), (), ())
    assert not snapshot.lock_held


def test_duplicate_in_flight_caller_id_rejected(simulator: LoadSimulator, start_thread: Any, wait_until: Any) -> None:
    results: list[Any] = []
    holder = start_thread(lambda: results.append(simulator.block_for(10, "shared")))
    assert wait_until(lambda: simulator.snapshot_contention().holding == ("shared",))

    with pytest.raises(CallerInFlightError, match="shared"):
        simulator.block_for(0, "shared")
    with pytest.raises(CallerInFlightError):
        simulator.hang_for(0, "shared")

    # The running caller keeps its registration and can still be cancelled
    assert simulator.snapshot_contention().holding == ("shared",)
    assert simulator.cancel("shared")
    holder.join(timeout=2)
    assert results[0].interrupted
    assert simulator.block_for(0, "shared").interrupted is False


def test_close_interrupts_running_and_later_callers(
    simulator: LoadSimulator,
    start_thread: Any,
    wait_until: Any,
) -> None:
    results: list[Any] = []
    holder = start_thread(lambda: results.append(simulator.block_for(30, "holder")))
    hanger = start_thread(lambda: results.append(simulator.hang_for(30, "hanger")))
    assert wait_until(lambda: simulator.lock.locked() and bool(simulator.snapshot_contention().hanging))

    started = time.monotonic()
    assert simulator.close() == 2
    holder.join(timeout=2)
    hanger.join(timeout=2)

    assert time.monotonic() - started < 1
    assert simulator.closed
    assert [result.interrupted for result in results] == [True, True]
    assert simulator.block_for(30, "late").interrupted
    assert simulator.hang_for(30, "late").interrupted
    assert time.monotonic() - started < 1
    assert not simulator.lock.locked()

def test_hang_for_waits_without_touching_lock(simulator: LoadSimulator, start_thread: Any, wait_until: Any) -> None:
    results: list[Any] = []
    started = time.monotonic()
    thread = start_thread(lambda: results.append(simulator.hang_for(HOLD, "hanger")))

    assert wait_until(lambda: simulator.snapshot_contention().hanging == ("hanger",))
    snapshot = simulator.snapshot_contention()
    assert not snapshot.lock_held
    assert snapshot.holding == ()
    assert snapshot.waiting == ()

    thread.join(timeout=2)
    assert time.monotonic() - started >= HOLD
    assert not results[0].interrupted
    assert simulator.snapshot_contention().hanging == ()


def test_hang_for_reports_interruption(simulator: LoadSimulator, start_thread: Any, wait_until: Any) -> None:
    results: list[Any] = []
    thread = start_thread(lambda: results.append(simulator.hang_for(30, "hanger")))
    assert wait_until(lambda: bool(simulator.snapshot_contention().hanging))

    simulator.cancel("hanger")
    thread.join(timeout=2)

    assert results[0].interrupted
    assert simulator.snapshot_contention().hanging == ()


def test_burn_cpu_for_does_real_work(simulator: LoadSimulator) -> None:
    seed = 1234
    started = time.monotonic()
    result = simulator.burn_cpu_for(0.2, "burner", rng=random.Random(seed))  # noqa: S311

    assert time.monotonic() - started >= 0.2
    assert result.elapsed_seconds >= 0.2
    assert result.iterations > 0

    replay = random.Random(seed)  # noqa: S311
    expected = 0.0
    for _ in range(result.iterations):
        expected += math.sqrt(replay.random() * 1_000_000)
    assert result.checksum == int(expected)


def test_burn_cpu_iterations_grow_with_duration(simulator: LoadSimulator) -> None:
    short = simulator.burn_cpu_for(0.05)
    long = simulator.burn_cpu_for(0.4)
    assert long.iterations > short.iterations
