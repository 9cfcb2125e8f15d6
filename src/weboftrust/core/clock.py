# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Clocks for timestamps and cooperative waiting.

Background loops never call ``time.sleep`` directly; they wait on a stop
event through a clock. ``SystemClock`` uses wall-clock time, ``ManualClock``
is a deterministic clock that only moves when told to (or when something
waits on it), so loops can be driven from tests without sleeping.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Current time (timezone-aware)."""
        ...

    def wait(self, stop: threading.Event, seconds: float) -> bool:
        """Wait up to ``seconds``; return True as soon as ``stop`` is set."""
        ...


class SystemClock:
    """Wall-clock time; waiting blocks on the stop event."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def wait(self, stop: threading.Event, seconds: float) -> bool:
        return stop.wait(timeout=seconds)


class ManualClock:
    """Deterministic clock for tests and simulations.

    ``wait`` does not block: it advances the clock by the requested amount
    and reports whether the stop event is set.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2026, 1, 1, tzinfo=UTC)
        self._lock = threading.Lock()
        self.waits: list[float] = []

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> datetime:
        if seconds < 0:
            raise ValueError(f"Cannot move a clock backwards, got {seconds}")
        with self._lock:
            self._now += timedelta(seconds=seconds)
            return self._now

    def wait(self, stop: threading.Event, seconds: float) -> bool:
        self.waits.append(seconds)
        if stop.is_set():
            return True
        self.advance(seconds)
        return stop.is_set()
