from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from urlshortener.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    Operation,
)
from urlshortener.resilience.rate_limiter import RateLimiter, RateLimitExceeded


T = TypeVar("T")


class OutcomeKind(str, Enum):
    SUCCESS = "SUCCESS"
    RATE_LIMITED = "RATE_LIMITED"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    OPERATION_FAILED = "OPERATION_FAILED"
    # set by callers that reject input before reaching the guard
    INVALID_INPUT = "INVALID_INPUT"


@dataclass(frozen=True)
class GuardResult(Generic[T]):
    kind: OutcomeKind
    circuit_state: CircuitState
    value: Optional[T] = None
    error: Optional[BaseException] = None
    retry_after_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def attempted(self) -> bool:
        """True when the operation actually ran."""
        return self.kind in (OutcomeKind.SUCCESS, OutcomeKind.OPERATION_FAILED)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class ResilienceGuard:
    """Rate limiter first, circuit breaker second; every outcome comes back as a tagged result.

    A refused admission never reaches the breaker, so rate limiting cannot
    count as a downstream failure.
    """

    rate_limiter: RateLimiter
    circuit_breaker: CircuitBreaker

    async def call(self, operation: Operation[T]) -> GuardResult[T]:
        try:
            self.rate_limiter.try_acquire()
        except RateLimitExceeded as exc:
            return GuardResult(
                kind=OutcomeKind.RATE_LIMITED,
                circuit_state=self.circuit_breaker.get_state(),
                error=exc,
                retry_after_ms=exc.retry_after_ms,
            )
        try:
            value = await self.circuit_breaker.execute(operation)
        except CircuitOpenError as exc:
            return GuardResult(
                kind=OutcomeKind.CIRCUIT_OPEN,
                circuit_state=exc.state,
                error=exc,
                retry_after_ms=exc.retry_after_ms,
            )
        except Exception as exc:
            return GuardResult(
                kind=OutcomeKind.OPERATION_FAILED,
                circuit_state=self.circuit_breaker.get_state(),
                error=exc,
            )
        return GuardResult(
            kind=OutcomeKind.SUCCESS,
            circuit_state=self.circuit_breaker.get_state(),
            value=value,
        )
