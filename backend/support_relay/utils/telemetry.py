"""
Prometheus metrics for the chat relay.
Module-level collectors, the ``/metrics`` endpoint and an in-process
counter summary reported by the root and health endpoints.
"""
import logging
import time
from collections import Counter as Tally
from typing import Any, Dict

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

METRIC_PREFIX = "support_relay"

# HTTP
http_requests = Counter(
    f"{METRIC_PREFIX}_http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status"]
)

http_latency = Histogram(
    f"{METRIC_PREFIX}_http_request_seconds",
    "HTTP request latency by route template",
    ["method", "route"]
)

# Conversation
recorded_messages = Counter(
    f"{METRIC_PREFIX}_messages_total",
    "Messages appended to session history",
    ["role"]
)

resolutions = Counter(
    f"{METRIC_PREFIX}_resolutions_total",
    "Resolved user messages by source and confidence",
    ["source", "confidence"]
)

escalations = Counter(
    f"{METRIC_PREFIX}_escalations_total",
    "Sessions handed to a human agent",
    ["reason"]
)

registered_sessions = Gauge(
    f"{METRIC_PREFIX}_sessions",
    "Sessions currently held by the registry"
)

swept_sessions = Counter(
    f"{METRIC_PREFIX}_sessions_swept_total",
    "Sessions removed for inactivity"
)

# Providers
provider_latency = Histogram(
    f"{METRIC_PREFIX}_provider_call_seconds",
    "Text-generation call latency, including retries",
    ["provider", "outcome"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60)
)


def setup_telemetry(app: FastAPI) -> None:
    """Expose ``/metrics`` and record per-request HTTP metrics."""

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.middleware("http")
    async def record_http_metrics(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # Route templates keep label cardinality bounded; unmatched paths collapse
        route = getattr(request.scope.get("route"), "path", "unmatched")

        http_requests.labels(request.method, route, str(response.status_code)).inc()
        http_latency.labels(request.method, route).observe(elapsed)
        return response

    logger.info("Prometheus metrics exposed at /metrics")


def track_chat_message(role: str) -> None:
    recorded_messages.labels(role=role).inc()


def track_resolution(source: str, confidence: str) -> None:
    resolutions.labels(source=source, confidence=confidence).inc()


def track_escalation(reason: str) -> None:
    escalations.labels(reason=reason).inc()


def track_provider_call(provider: str, outcome: str, duration: float) -> None:
    provider_latency.labels(provider=provider, outcome=outcome).observe(duration)


def track_sessions_swept(count: int) -> None:
    if count:
        swept_sessions.inc(count)


def update_active_sessions(count: int) -> None:
    registered_sessions.set(count)


class MetricsCollector:
    """
    In-process counters for this application instance.

    Mirrors the Prometheus counters it feeds so the root endpoint can
    report totals without scraping.
    """

    def __init__(self):
        self.started_at = time.monotonic()
        self.messages: Tally = Tally()
        self.escalations: Tally = Tally()
        self.errors = 0

    def record_message(self, role: str) -> None:
        self.messages[role] += 1
        track_chat_message(role)

    def record_escalation(self, reason: str) -> None:
        self.escalations[reason] += 1
        track_escalation(reason)

    def record_error(self) -> None:
        self.errors += 1

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.monotonic() - self.started_at
        return {
            "uptime_seconds": round(uptime, 3),
            "messages_processed": sum(self.messages.values()),
            "messages_by_role": dict(self.messages),
            "escalations": sum(self.escalations.values()),
            "escalations_by_reason": dict(self.escalations),
            "errors": self.errors
        }


__all__ = [
    'setup_telemetry',
    'track_chat_message',
    'track_resolution',
    'track_escalation',
    'track_provider_call',
    'track_sessions_swept',
    'update_active_sessions',
    'MetricsCollector'
]
