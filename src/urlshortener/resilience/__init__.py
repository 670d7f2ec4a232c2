from urlshortener.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerPolicy,
    CircuitOpenError,
    CircuitState,
)
from urlshortener.resilience.guard import GuardResult, OutcomeKind, ResilienceGuard
from urlshortener.resilience.rate_limiter import (
    RateLimiter,
    RateLimitExceeded,
    RateLimitPolicy,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerPolicy",
    "CircuitOpenError",
    "CircuitState",
    "GuardResult",
    "OutcomeKind",
    "RateLimitExceeded",
    "RateLimitPolicy",
    "RateLimiter",
    "ResilienceGuard",
]
