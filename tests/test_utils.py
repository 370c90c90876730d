"""
Tests for backoff retries, middleware and the metrics collector.
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from support_relay.utils.middleware import RateLimitMiddleware, RequestContextMiddleware
from support_relay.utils.retry import BackoffPolicy, with_backoff
from support_relay.utils.telemetry import MetricsCollector

NO_DELAY = BackoffPolicy(attempts=3, base_delay=0, retry_on=(ConnectionError,))


# ===========================
# Backoff
# ===========================

@pytest.mark.unit
def test_delays_grow_and_cap():
    policy = BackoffPolicy(attempts=5, base_delay=0.5, max_delay=1.5, multiplier=2)
    assert list(policy.delays()) == [0.5, 1.0, 1.5, 1.5]


@pytest.mark.unit
def test_jitter_stays_within_fraction():
    policy = BackoffPolicy(attempts=4, base_delay=1.0, max_delay=10, jitter=0.5)
    for delay, base in zip(policy.delays(), [1.0, 2.0, 4.0]):
        assert base <= delay <= base * 1.5


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retries_listed_errors_until_success():
    calls = []

    @with_backoff(NO_DELAY)
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gives_up_with_last_error():
    calls = []

    @with_backoff(NO_DELAY)
    async def down():
        calls.append(1)
        raise ConnectionError(f"attempt {len(calls)}")

    with pytest.raises(ConnectionError, match="attempt 3"):
        await down()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    @with_backoff(NO_DELAY)
    async def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await broken()
    assert len(calls) == 1


# ===========================
# Middleware
# ===========================

def _app(**rate_limit) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    if rate_limit:
        app.add_middleware(RateLimitMiddleware, **rate_limit)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


@pytest.mark.unit
def test_request_id_generated_and_echoed():
    client = TestClient(_app())

    generated = client.get("/ping")
    supplied = client.get("/ping", headers={"X-Request-ID": "abc-123"})
    oversized = client.get("/ping", headers={"X-Request-ID": "x" * 500})

    assert len(generated.headers["X-Request-ID"]) == 36
    assert supplied.headers["X-Request-ID"] == "abc-123"
    assert oversized.headers["X-Request-ID"] != "x" * 500
    assert "X-Process-Time" in generated.headers


@pytest.mark.unit
def test_rate_limit_rejects_excess_requests():
    client = TestClient(_app(calls=2, period=60))

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200

    limited = client.get("/ping")
    assert limited.status_code == 429
    assert limited.json()["success"] is False
    assert limited.headers["Retry-After"] == "60"


@pytest.mark.unit
def test_rate_limit_skips_health_and_separates_forwarded_clients():
    client = TestClient(_app(calls=1, period=60, trust_forwarded=True))

    client.get("/ping")
    assert client.get("/health").status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
    assert client.get("/ping").status_code == 429


@pytest.mark.unit
def test_rate_limit_ignores_forwarded_header_by_default():
    client = TestClient(_app(calls=1, period=60))

    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 429


@pytest.mark.unit
def test_rate_limit_forgets_idle_clients():
    limiter = RateLimitMiddleware(FastAPI(), calls=5, period=60)
    for n in range(3):
        assert limiter.admit(f"10.0.0.{n}")
    assert len(limiter.windows) == 3

    latest = limiter.windows["10.0.0.2"][-1]
    limiter.purge_idle(latest + 60)

    assert limiter.windows == {}
    assert limiter.admit("10.0.0.1")


# ===========================
# Metrics collector
# ===========================

@pytest.mark.unit
def test_metrics_collector_totals():
    metrics = MetricsCollector()
    metrics.record_message("user")
    metrics.record_message("assistant")
    metrics.record_escalation("customer_request")
    metrics.record_error()

    stats = metrics.get_stats()

    assert stats["messages_processed"] == 2
    assert stats["messages_by_role"] == {"user": 1, "assistant": 1}
    assert stats["escalations_by_reason"] == {"customer_request": 1}
    assert stats["errors"] == 1
    assert stats["uptime_seconds"] >= 0
