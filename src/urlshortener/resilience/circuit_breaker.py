from __future__ import annotations

import inspect
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, List, Optional, Tuple, Type, TypeVar, Union

from urlshortener.common.clock import Clock, MonotonicClock


T = TypeVar("T")

Operation = Callable[[], Union[Awaitable[T], T]]
StateChangeListener = Callable[["CircuitState", "CircuitState"], None]


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerPolicy:
    failure_threshold: int = 6
    success_threshold: int = 4
    open_duration_ms: int = 25_000
    failure_window_ms: int = 60_000
    half_open_max_trials: int = 1

    def __post_init__(self) -> None:
        for name in (
            "failure_threshold",
            "success_threshold",
            "open_duration_ms",
            "failure_window_ms",
            "half_open_max_trials",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")

    @staticmethod
    def from_settings(raw: dict) -> "CircuitBreakerPolicy":
        breaker = raw.get("circuit_breaker", {}) or {}
        return CircuitBreakerPolicy(
            failure_threshold=int(breaker.get("failure_threshold", 6)),
            success_threshold=int(breaker.get("success_threshold", 4)),
            open_duration_ms=int(breaker.get("open_duration_ms", 25_000)),
            failure_window_ms=int(breaker.get("failure_window_ms", 60_000)),
            half_open_max_trials=int(breaker.get("half_open_max_trials", 1)),
        )


class CircuitOpenError(Exception):
    """Raised when the breaker refuses to run an operation. The operation was never attempted."""

    def __init__(self, state: CircuitState, retry_after_ms: Optional[float] = None) -> None:
        self.state = state
        self.retry_after_ms = None if retry_after_ms is None else max(float(retry_after_ms), 0.0)
        if state is CircuitState.HALF_OPEN:
            message = "Circuit is half-open and a trial call is already in flight"
        elif self.retry_after_ms is not None:
            message = f"Circuit is open. Try again in {self.retry_after_ms / 1000.0:.1f}s."
        else:
            message = "Circuit is open"
        super().__init__(message)


class CircuitBreaker:
    """Three-state breaker (CLOSED -> OPEN -> HALF_OPEN -> CLOSED) around an async operation.

    - CLOSED counts failures; each failure is timestamped and forgotten once it
      is older than `failure_window_ms`. `failure_threshold` live failures open
      the circuit. A success clears them.
    - OPEN rejects with `CircuitOpenError` until `open_duration_ms` has passed
      since `opened_at`; the move to HALF_OPEN happens lazily on the next
      `execute` or `get_state`, there is no timer.
    - HALF_OPEN admits at most `half_open_max_trials` concurrent trials.
      `success_threshold` successes close the circuit; any failure reopens it.

    Bookkeeping runs under a lock that is never held across the awaited
    operation. Outcomes of calls admitted before the latest transition are
    ignored, so a slow CLOSED call cannot count against a HALF_OPEN trial.
    """

    def __init__(
        self,
        policy: Optional[CircuitBreakerPolicy] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        on_state_change: Optional[StateChangeListener] = None,
        recorded_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        name: str = "default",
    ) -> None:
        self._policy = policy or CircuitBreakerPolicy()
        self._clock = clock or MonotonicClock()
        self._logger = logger or logging.getLogger("urlshortener")
        self._on_state_change = on_state_change
        self._recorded_exceptions = recorded_exceptions
        self.name = name

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._consecutive_successes = 0
        self._opened_at: Optional[float] = None
        self._inflight_trials = 0
        self._generation = 0

    # --------------- Introspection ---------------
    @property
    def policy(self) -> CircuitBreakerPolicy:
        return self._policy

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            if self._state is CircuitState.CLOSED:
                self._prune_failures(self._clock.now_ms())
            return len(self._failures)

    @property
    def consecutive_successes(self) -> int:
        with self._lock:
            return self._consecutive_successes

    @property
    def opened_at_ms(self) -> Optional[float]:
        with self._lock:
            return self._opened_at

    def get_state(self) -> CircuitState:
        with self._lock:
            changes = self._refresh(self._clock.now_ms())
            state = self._state
        self._notify(changes)
        return state

    @property
    def state(self) -> CircuitState:
        return self.get_state()

    def snapshot(self) -> dict:
        state = self.get_state()
        with self._lock:
            return {
                "name": self.name,
                "state": state.value,
                "consecutive_failures": len(self._failures),
                "consecutive_successes": self._consecutive_successes,
                "opened_at_ms": self._opened_at,
                "inflight_trials": self._inflight_trials,
                "failure_threshold": self._policy.failure_threshold,
                "success_threshold": self._policy.success_threshold,
                "open_duration_ms": self._policy.open_duration_ms,
                "failure_window_ms": self._policy.failure_window_ms,
            }

    def reset(self) -> None:
        with self._lock:
            changes = []
            if self._state is not CircuitState.CLOSED:
                changes.append(self._transition(CircuitState.CLOSED, self._clock.now_ms()))
            else:
                self._failures.clear()
                self._consecutive_successes = 0
        self._notify(changes)

    # --------------- Execution ---------------
    async def execute(self, operation: Operation[T]) -> T:
        generation = self._admit()
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except self._recorded_exceptions as exc:
            self._record_failure(generation, exc)
            raise
        except BaseException:
            self._release(generation)
            raise
        self._record_success(generation)
        return result

    def _admit(self) -> int:
        rejection: Optional[CircuitOpenError] = None
        with self._lock:
            now = self._clock.now_ms()
            changes = self._refresh(now)
            if self._state is CircuitState.OPEN:
                remaining = self._policy.open_duration_ms - self._open_elapsed(now)
                rejection = CircuitOpenError(CircuitState.OPEN, remaining)
            elif self._state is CircuitState.HALF_OPEN:
                if self._inflight_trials >= self._policy.half_open_max_trials:
                    rejection = CircuitOpenError(CircuitState.HALF_OPEN)
                else:
                    self._inflight_trials += 1
            generation = self._generation
        self._notify(changes)
        if rejection is not None:
            self._logger.info(
                "circuit_open_rejected",
                extra={
                    "breaker": self.name,
                    "state": rejection.state.value,
                    "retry_after_ms": rejection.retry_after_ms,
                },
            )
            raise rejection
        return generation

    def _record_success(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            changes = []
            if self._state is CircuitState.CLOSED:
                self._failures.clear()
            elif self._state is CircuitState.HALF_OPEN:
                self._inflight_trials = max(self._inflight_trials - 1, 0)
                self._consecutive_successes += 1
                if self._consecutive_successes >= self._policy.success_threshold:
                    changes.append(self._transition(CircuitState.CLOSED, self._clock.now_ms()))
        self._notify(changes)

    def _record_failure(self, generation: int, exc: BaseException) -> None:
        with self._lock:
            if generation != self._generation:
                return
            now = self._clock.now_ms()
            changes = []
            if self._state is CircuitState.CLOSED:
                self._prune_failures(now)
                self._failures.append(now)
                if len(self._failures) >= self._policy.failure_threshold:
                    changes.append(self._transition(CircuitState.OPEN, now))
            elif self._state is CircuitState.HALF_OPEN:
                changes.append(self._transition(CircuitState.OPEN, now))
            failures = len(self._failures)
        self._logger.debug(
            "circuit_failure_recorded",
            extra={
                "breaker": self.name,
                "error": type(exc).__name__,
                "consecutive_failures": failures,
            },
        )
        self._notify(changes)

    def _release(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if self._state is CircuitState.HALF_OPEN:
                self._inflight_trials = max(self._inflight_trials - 1, 0)

    # --------------- State helpers (lock held) ---------------
    def _prune_failures(self, now: float) -> None:
        cutoff = now - self._policy.failure_window_ms
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()

    def _open_elapsed(self, now: float) -> float:
        if self._opened_at is None:
            raise RuntimeError("circuit is OPEN without an opened_at timestamp")
        return now - self._opened_at

    def _refresh(self, now: float) -> List[Tuple[CircuitState, CircuitState]]:
        if self._state is CircuitState.CLOSED:
            self._prune_failures(now)
            return []
        if self._state is CircuitState.OPEN:
            if self._open_elapsed(now) >= self._policy.open_duration_ms:
                return [self._transition(CircuitState.HALF_OPEN, now)]
        return []

    def _transition(
        self, new_state: CircuitState, now: float
    ) -> Tuple[CircuitState, CircuitState]:
        old_state = self._state
        self._state = new_state
        self._failures.clear()
        self._consecutive_successes = 0
        self._inflight_trials = 0
        self._generation += 1
        if new_state is CircuitState.OPEN:
            self._opened_at = now
        elif new_state is CircuitState.CLOSED:
            self._opened_at = None
        return old_state, new_state

    def _notify(self, changes: List[Tuple[CircuitState, CircuitState]]) -> None:
        for old_state, new_state in changes:
            self._logger.info(
                "circuit_state_changed",
                extra={"breaker": self.name, "from": old_state.value, "to": new_state.value},
            )
            if self._on_state_change is None:
                continue
            try:
                self._on_state_change(old_state, new_state)
            except Exception as exc:
                self._logger.warning(
                    "circuit_listener_error", extra={"breaker": self.name}, exc_info=exc
                )


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerPolicy",
    "CircuitOpenError",
    "CircuitState",
    "Operation",
]
