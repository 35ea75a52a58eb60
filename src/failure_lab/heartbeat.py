"""Periodic heartbeat and status logging."""

from __future__ import annotations

import itertools
import os
import platform
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import psutil

from .logging import get_logger

if TYPE_CHECKING:
    from .config import Settings
    from .entities import TestEntityService

logger = get_logger(__name__)

_MB = 1024 * 1024


@dataclass
class ScheduledJob:
    """A callable run at a fixed rate."""

    name: str
    interval_seconds: float
    func: Callable[[], None]
    next_run: float = field(default=0.0)


class HeartbeatScheduler:
    """Run the status logging jobs on a background daemon thread.

    Every job fires once at start and then every ``interval_seconds``.
    """

    def __init__(
        self,
        settings: Settings,
        entity_service: TestEntityService | None = None,
        started_at: float | None = None,
    ) -> None:
        self.settings = settings
        self.entity_service = entity_service
        self.started_at = started_at if started_at is not None else time.monotonic()
        self._counter = itertools.count(1)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._process = psutil.Process(os.getpid())
        self.jobs = [
            ScheduledJob("heartbeat", settings.heartbeat_interval_seconds, self.heartbeat_log),
            ScheduledJob("system-status", settings.system_status_interval_seconds, self.system_status_log),
            ScheduledJob("database-status", settings.database_status_interval_seconds, self.database_status_log),
            ScheduledJob("detailed-system", settings.detailed_status_interval_seconds, self.detailed_system_log),
        ]

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if not self.settings.scheduled_logging_enabled:
            logger.info("heartbeat.disabled")
            return
        if self.running:
            return
        self._stop.clear()
        now = time.monotonic()
        for job in self.jobs:
            job.next_run = now
        self._thread = threading.Thread(target=self._run, name="heartbeat-scheduler", daemon=True)
        self._thread.start()
        logger.info("heartbeat.started", jobs=[job.name for job in self.jobs])

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("heartbeat.stopped")

    def run_pending(self, now: float | None = None) -> list[str]:
        """Run every job that is due and return the names of those run."""
        now = time.monotonic() if now is None else now
        ran = []
        for job in self.jobs:
            if job.next_run <= now:
                try:
                    job.func()
                except Exception:
                    logger.exception("heartbeat.job_failed", job=job.name)
                job.next_run = now + job.interval_seconds
                ran.append(job.name)
        return ran

    def _run(self) -> None:
        while True:
            self.run_pending()
            next_due = min(job.next_run for job in self.jobs)
            if self._stop.wait(max(0.0, next_due - time.monotonic())):
                break

    def heartbeat_log(self) -> int:
        count = next(self._counter)
        logger.info(
            "heartbeat",
            count=count,
            timestamp=datetime.now(UTC).isoformat(),
            active_threads=threading.active_count(),
        )
        return count

    def system_status_log(self) -> None:
        memory = self._process.memory_info()
        system = psutil.virtual_memory()
        logger.info(
            "heartbeat.system_status",
            rss_mb=memory.rss // _MB,
            vms_mb=memory.vms // _MB,
            system_total_mb=system.total // _MB,
            system_available_mb=system.available // _MB,
            active_threads=threading.active_count(),
        )

    def database_status_log(self) -> None:
        if self.entity_service is None:
            return
        try:
            count = self.entity_service.count_entities()
        except Exception:
            logger.exception("heartbeat.database_status_failed")
            return
        logger.info("heartbeat.database_status", entity_count=count)

    def detailed_system_log(self) -> None:
        uname = platform.uname()
        logger.info(
            "heartbeat.detailed_status",
            application=self.settings.service_name,
            uptime_seconds=round(time.monotonic() - self.started_at, 1),
            python=f"{platform.python_implementation()} {platform.python_version()}",
            os=f"{uname.system} {uname.release} {uname.machine}",
            cpu_count=os.cpu_count(),
        )
