"""Failure lab: thread exhaustion, hang and CPU load scenarios over HTTP."""

from __future__ import annotations

from .simulator import LoadSimulator

__all__ = ["LoadSimulator"]

__version__ = "0.1.0"
