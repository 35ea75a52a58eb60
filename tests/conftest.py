"""Pytest configuration and fixtures for failure lab tests."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator

import pytest
from fastapi import FastAPI

from failure_lab.config import Settings
from failure_lab.service import create_app
from failure_lab.simulator import LoadSimulator


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        service_name="failure-lab-test",
        api_host="127.0.0.1",
        api_port=18080,
        log_level="DEBUG",
        worker_threads=5,
        fanout_enabled=True,
        fanout_mode="local",
        database_url="sqlite+pysqlite:///:memory:",
        scheduled_logging_enabled=False,
        otel_enabled=False,
    )


@pytest.fixture
def simulator() -> Generator[LoadSimulator]:
    """Create an isolated simulator and unwind any caller left running."""
    sim = LoadSimulator()
    yield sim
    sim.cancel_all()


@pytest.fixture
def app(test_settings: Settings, simulator: LoadSimulator) -> FastAPI:
    return create_app(settings=test_settings, simulator=simulator)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it is true or the timeout expires."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def start_thread(simulator: LoadSimulator) -> Generator[Callable[..., threading.Thread]]:
    """Start daemon threads, then cancel simulator callers and join them at teardown."""
    threads: list[threading.Thread] = []

    def _start(target: Callable[..., object], *args: object, name: str | None = None) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        threads.append(thread)
        return thread

    yield _start
    simulator.cancel_all()
    for thread in threads:
        thread.join(timeout=5)
