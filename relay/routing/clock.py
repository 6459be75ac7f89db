"""Clock capability — the registry's only source of the current time."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock. Reads ``datetime.now(UTC)`` on every call."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Clock pinned to a given instant, optionally stepping on every read.

    Args:
        start: The instant returned by the first ``now()`` call.
        step: Amount added after each read. Zero keeps the clock frozen.
    """

    def __init__(self, start: datetime, step: timedelta | None = None) -> None:
        self._current = start
        self._step = step or timedelta(0)

    def now(self) -> datetime:
        current = self._current
        self._current = current + self._step
        return current

    def advance(self, delta: timedelta) -> None:
        """Move the clock forward by *delta*."""
        self._current += delta
