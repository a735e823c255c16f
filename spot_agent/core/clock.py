"""Injectable time source for day-scoped and cooldown state."""

from __future__ import annotations
import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        """Current wall-clock time in epoch milliseconds."""
        ...


class SystemClock:
    """Reads the real wall clock."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class ManualClock:
    """Clock that only moves when told to. Used by tests and replays."""

    def __init__(self, start_ms: int = 0):
        self._now_ms = int(start_ms)

    @classmethod
    def at(cls, when: datetime) -> "ManualClock":
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return cls(int(when.timestamp() * 1000))

    def now_ms(self) -> int:
        return self._now_ms

    def set(self, now_ms: int) -> None:
        self._now_ms = int(now_ms)

    def advance(self, seconds: float = 0.0, minutes: float = 0.0, hours: float = 0.0) -> None:
        self._now_ms += int((seconds + minutes * 60 + hours * 3600) * 1000)
