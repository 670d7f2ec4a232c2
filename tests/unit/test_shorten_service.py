import io

import pytest

from urlshortener.common.clock import ManualClock
from urlshortener.common.logging import LOGGER_NAME
from urlshortener.common.metrics import MetricsEmitter
from urlshortener.resilience import CircuitState, OutcomeKind
from urlshortener.shortener.client import ENDPOINT_ENV_VAR
from urlshortener.shortener.service import build_service


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


class ScriptedSession:
    """Replays a list of responses; advances the clock to simulate latency."""

    def __init__(self, clock: ManualClock, responses, latency_ms: float = 0.0) -> None:
        self.clock = clock
        self.responses = list(responses)
        self.latency_ms = latency_ms
        self.calls = 0

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls += 1
        self.clock.advance(self.latency_ms)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _raw(**overrides) -> dict:
    raw = {
        "shortener": {"api_endpoint": "https://api.test/prod"},
        "rate_limit": {"max_calls": 15, "window_ms": 60_000},
        "circuit_breaker": {
            "failure_threshold": 6,
            "success_threshold": 4,
            "open_duration_ms": 25_000,
            "failure_window_ms": 60_000,
        },
    }
    raw.update(overrides)
    return raw


@pytest.fixture(autouse=True)
def _no_endpoint_env(monkeypatch):
    monkeypatch.delenv(ENDPOINT_ENV_VAR, raising=False)


@pytest.mark.asyncio
async def test_successful_shorten_reports_link_and_query_time(clock: ManualClock) -> None:
    session = ScriptedSession(
        clock, [FakeResponse(201, {"code": "q9", "original": "http://example.com"})], latency_ms=120
    )
    stream = io.StringIO()
    service = build_service(_raw(), clock=clock, session=session, metrics=MetricsEmitter(stream=stream))

    outcome = await service.shorten("example.com")

    assert outcome.ok
    assert outcome.url == "http://example.com"
    assert outcome.code == "q9"
    assert outcome.short_url == "https://api.test/prod/url/q9"
    assert outcome.query_time_ms == 120
    assert outcome.circuit_state is CircuitState.CLOSED
    assert '"shorten_query_time_ms"' in stream.getvalue()
    assert outcome.to_dict()["kind"] == "SUCCESS"


@pytest.mark.asyncio
async def test_repeated_failures_open_the_circuit(clock: ManualClock) -> None:
    session = ScriptedSession(clock, [FakeResponse(502, text="bad gateway")])
    stream = io.StringIO()
    service = build_service(_raw(), clock=clock, session=session, metrics=MetricsEmitter(stream=stream))

    outcomes = [await service.shorten("example.com") for _ in range(7)]

    assert [o.kind for o in outcomes[:6]] == [OutcomeKind.OPERATION_FAILED] * 6
    assert outcomes[0].error == "Failed to shorten URL: bad gateway"
    assert outcomes[5].circuit_state is CircuitState.OPEN
    assert outcomes[6].kind is OutcomeKind.CIRCUIT_OPEN
    assert outcomes[6].retry_after_ms == 25_000
    assert session.calls == 6
    assert '"circuit_state_change"' in stream.getvalue()


@pytest.mark.asyncio
async def test_network_errors_count_as_failures(clock: ManualClock) -> None:
    session = ScriptedSession(clock, [ConnectionError("connection refused")])
    service = build_service(_raw(), clock=clock, session=session)

    outcome = await service.shorten("example.com")
    assert outcome.kind is OutcomeKind.OPERATION_FAILED
    assert outcome.error == "connection refused"
    assert service.guard.circuit_breaker.consecutive_failures == 1


@pytest.mark.asyncio
async def test_rate_limit_rejects_before_calling_api(clock: ManualClock) -> None:
    session = ScriptedSession(clock, [FakeResponse(200, {"code": "a", "original": "x"})])
    service = build_service(
        _raw(rate_limit={"max_calls": 2, "window_ms": 60_000}), clock=clock, session=session
    )

    kinds = [(await service.shorten("example.com")).kind for _ in range(3)]
    assert kinds == [OutcomeKind.SUCCESS, OutcomeKind.SUCCESS, OutcomeKind.RATE_LIMITED]
    assert session.calls == 2


@pytest.mark.asyncio
async def test_blank_url_is_rejected_without_consuming_quota(clock: ManualClock) -> None:
    session = ScriptedSession(clock, [FakeResponse(200, {"code": "a", "original": "x"})])
    service = build_service(
        _raw(rate_limit={"max_calls": 1, "window_ms": 60_000}), clock=clock, session=session
    )
    outcome = await service.shorten("  ")
    assert outcome.kind is OutcomeKind.INVALID_INPUT
    assert outcome.error == "url must not be empty"
    assert outcome.circuit_state is CircuitState.CLOSED
    assert session.calls == 0
    assert (await service.shorten("example.com")).ok


@pytest.mark.asyncio
async def test_circuit_recovers_after_open_duration(clock: ManualClock) -> None:
    failing = [FakeResponse(500, text="boom")] * 6
    healthy = [FakeResponse(200, {"code": f"c{i}", "original": "x"}) for i in range(4)]
    session = ScriptedSession(clock, failing + healthy)
    service = build_service(_raw(), clock=clock, session=session)

    for _ in range(6):
        await service.shorten("example.com")
    clock.advance(25_000)

    states = [(await service.shorten("example.com")).circuit_state for _ in range(4)]
    assert states == [CircuitState.HALF_OPEN] * 3 + [CircuitState.CLOSED]


def test_build_service_logs_through_package_logger(clock: ManualClock) -> None:
    service = build_service(_raw(), clock=clock, session=ScriptedSession(clock, [FakeResponse(200)]))
    assert service.logger.name == LOGGER_NAME
