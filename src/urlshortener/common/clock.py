from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> float:
        """Return the current time in milliseconds."""
        ...


class MonotonicClock:
    """Wall-clock independent time source used outside of tests."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock:
    """Clock that only moves when told to; keeps window and cooldown tests deterministic."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now_ms = float(start_ms)
        self._lock = threading.Lock()

    def now_ms(self) -> float:
        with self._lock:
            return self._now_ms

    def advance(self, delta_ms: float) -> float:
        if delta_ms < 0:
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._now_ms += float(delta_ms)
            return self._now_ms

    def set(self, now_ms: float) -> None:
        with self._lock:
            if now_ms < self._now_ms:
                raise ValueError("clock cannot move backwards")
            self._now_ms = float(now_ms)
