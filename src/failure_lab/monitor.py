"""Restart tracking exposed as an actuator-style endpoint."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

from .logging import get_logger

logger = get_logger(__name__)


def format_uptime(seconds: int) -> str:
    hours, remainder = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class RestartMonitor:
    """Count application-ready events and report uptime since the last one."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.restart_count = 0
        self.last_start_time: datetime | None = None
        self.application_ready_time: datetime | None = None

    def mark_ready(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        with self._lock:
            self.restart_count += 1
            self.last_start_time = now
            self.application_ready_time = now
            count = self.restart_count
        logger.info("monitor.application_ready", restart_count=count, ready_at=now.isoformat())
        return count

    def uptime(self, now: datetime | None = None) -> str:
        if self.application_ready_time is None:
            return "Not started"
        now = now or datetime.now(UTC)
        return format_uptime(int((now - self.application_ready_time).total_seconds()))

    def restart_info(self, now: datetime | None = None) -> dict[str, object]:
        now = now or datetime.now(UTC)
        return {
            "restartCount": self.restart_count,
            "lastStartTime": self.last_start_time.isoformat() if self.last_start_time else None,
            "applicationReadyTime": (
                self.application_ready_time.isoformat() if self.application_ready_time else None
            ),
            "uptime": self.uptime(now),
            "currentTime": now.isoformat(),
        }
