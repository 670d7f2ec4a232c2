from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from urlshortener.common.clock import Clock, MonotonicClock


@dataclass(frozen=True)
class RateLimitPolicy:
    max_calls: int = 15
    window_ms: int = 60_000

    def __post_init__(self) -> None:
        if self.max_calls <= 0:
            raise ValueError(f"max_calls must be > 0, got {self.max_calls}")
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be > 0, got {self.window_ms}")

    @staticmethod
    def from_settings(raw: dict) -> "RateLimitPolicy":
        rate_limit = raw.get("rate_limit", {}) or {}
        return RateLimitPolicy(
            max_calls=int(rate_limit.get("max_calls", 15)),
            window_ms=int(rate_limit.get("window_ms", 60_000)),
        )


class RateLimitExceeded(Exception):
    def __init__(self, retry_after_ms: float, max_calls: int, window_ms: int) -> None:
        self.retry_after_ms = max(float(retry_after_ms), 0.0)
        self.max_calls = max_calls
        self.window_ms = window_ms
        seconds = self.retry_after_ms / 1000.0
        super().__init__(
            f"Rate limit exceeded: {max_calls} calls per {window_ms / 1000.0:g}s. "
            f"Try again in {seconds:.1f}s."
        )


class RateLimiter:
    """Sliding-window-log limiter.

    Every admitted call is stored with its timestamp; a call is refused while
    `max_calls` timestamps are younger than the window. Refusals never touch
    the log, so hammering a full limiter does not push the reset further out.
    """

    def __init__(
        self,
        policy: Optional[RateLimitPolicy] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._policy = policy or RateLimitPolicy()
        self._clock = clock or MonotonicClock()
        self._logger = logger or logging.getLogger("urlshortener")
        self._calls: Deque[float] = deque()
        self._lock = threading.Lock()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def _purge(self, now: float) -> None:
        cutoff = now - self._policy.window_ms
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def try_acquire(self) -> None:
        with self._lock:
            now = self._clock.now_ms()
            self._purge(now)
            if len(self._calls) >= self._policy.max_calls:
                retry_after = self._calls[0] + self._policy.window_ms - now
                exc = RateLimitExceeded(
                    retry_after, self._policy.max_calls, self._policy.window_ms
                )
            else:
                self._calls.append(now)
                return
        self._logger.warning(
            "rate_limited",
            extra={
                "retry_after_ms": exc.retry_after_ms,
                "max_calls": self._policy.max_calls,
                "window_ms": self._policy.window_ms,
            },
        )
        raise exc

    def allow(self) -> bool:
        try:
            self.try_acquire()
        except RateLimitExceeded:
            return False
        return True

    def in_window(self) -> int:
        with self._lock:
            self._purge(self._clock.now_ms())
            return len(self._calls)

    def remaining(self) -> int:
        return max(self._policy.max_calls - self.in_window(), 0)
