"""
Injectable time source.

Services that stamp rows take a Clock so tests can pin "now". Timestamps are
naive UTC, matching what SQLite hands back on read.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current naive UTC time."""
        ...


class SystemClock(Clock):
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock that always returns the same instant. Used by tests."""

    def __init__(self, fixed: datetime):
        self._fixed = fixed

    def now(self) -> datetime:
        return self._fixed

    def advance_to(self, fixed: datetime) -> None:
        self._fixed = fixed


def utcnow() -> datetime:
    """Default factory for model timestamp columns."""
    return SystemClock().now()
