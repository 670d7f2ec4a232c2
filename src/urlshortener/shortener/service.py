from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from urlshortener.common.clock import Clock, MonotonicClock
from urlshortener.common.logging import get_logger
from urlshortener.common.metrics import MetricsEmitter
from urlshortener.resilience import (
    CircuitBreaker,
    CircuitBreakerPolicy,
    CircuitState,
    OutcomeKind,
    RateLimiter,
    RateLimitPolicy,
    ResilienceGuard,
)
from urlshortener.shortener.client import ShortenerClient, ShortenerClientConfig
from urlshortener.shortener.urls import normalize_url, short_link


@dataclass(frozen=True)
class ShortenOutcome:
    url: str
    kind: OutcomeKind
    circuit_state: CircuitState
    code: Optional[str] = None
    original: Optional[str] = None
    short_url: Optional[str] = None
    query_time_ms: Optional[float] = None
    error: Optional[str] = None
    retry_after_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["circuit_state"] = self.circuit_state.value
        return payload


@dataclass
class ShortenService:
    client: ShortenerClient
    guard: ResilienceGuard
    clock: Clock = field(default_factory=MonotonicClock)
    metrics: Optional[MetricsEmitter] = None
    logger: logging.Logger = field(default_factory=get_logger)

    async def shorten(self, raw_url: str) -> ShortenOutcome:
        try:
            url = normalize_url(raw_url)
        except ValueError as exc:
            return self._reject_input(raw_url, exc)
        started_ms = self.clock.now_ms()
        result = await self.guard.call(lambda: self.client.shorten(url))

        if result.ok:
            shortened = result.unwrap()
            outcome = ShortenOutcome(
                url=url,
                kind=result.kind,
                circuit_state=result.circuit_state,
                code=shortened.code,
                original=shortened.original,
                short_url=short_link(self.client.config.resource_url, shortened.code),
                query_time_ms=self.clock.now_ms() - started_ms,
            )
            self.logger.info(
                "shorten_succeeded",
                extra={"url": url, "code": outcome.code, "query_time_ms": outcome.query_time_ms},
            )
        else:
            outcome = ShortenOutcome(
                url=url,
                kind=result.kind,
                circuit_state=result.circuit_state,
                error=str(result.error) if result.error is not None else None,
                retry_after_ms=result.retry_after_ms,
            )
            self.logger.warning(
                "shorten_failed",
                extra={
                    "url": url,
                    "kind": result.kind.value,
                    "circuit_state": result.circuit_state.value,
                    "error": outcome.error,
                },
            )
        self._emit(outcome)
        return outcome

    def _reject_input(self, raw_url: str, exc: ValueError) -> ShortenOutcome:
        outcome = ShortenOutcome(
            url=raw_url,
            kind=OutcomeKind.INVALID_INPUT,
            circuit_state=self.guard.circuit_breaker.get_state(),
            error=str(exc),
        )
        self.logger.warning("shorten_invalid_input", extra={"url": raw_url, "error": outcome.error})
        self._emit(outcome)
        return outcome

    def _emit(self, outcome: ShortenOutcome) -> None:
        if self.metrics is None:
            return
        tags = {"kind": outcome.kind.value, "circuit_state": outcome.circuit_state.value}
        self.metrics.emit("shorten_requests", 1, tags)
        if outcome.query_time_ms is not None:
            self.metrics.emit("shorten_query_time_ms", outcome.query_time_ms, tags)


def build_service(
    raw: dict,
    *,
    clock: Optional[Clock] = None,
    metrics: Optional[MetricsEmitter] = None,
    logger: Optional[logging.Logger] = None,
    session: Any = None,
) -> ShortenService:
    """Wire one limiter and one breaker shared by every call made through the returned service."""
    clock = clock or MonotonicClock()
    logger = logger or get_logger()

    def _on_state_change(old: CircuitState, new: CircuitState) -> None:
        if metrics is not None:
            metrics.emit("circuit_state_change", 1, {"from": old.value, "to": new.value})

    rate_limiter = RateLimiter(RateLimitPolicy.from_settings(raw), clock=clock, logger=logger)
    circuit_breaker = CircuitBreaker(
        CircuitBreakerPolicy.from_settings(raw),
        clock=clock,
        logger=logger,
        on_state_change=_on_state_change,
        name="shortener_api",
    )
    client = ShortenerClient(ShortenerClientConfig.from_settings(raw), session=session)
    return ShortenService(
        client=client,
        guard=ResilienceGuard(rate_limiter=rate_limiter, circuit_breaker=circuit_breaker),
        clock=clock,
        metrics=metrics,
        logger=logger,
    )
