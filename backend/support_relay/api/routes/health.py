"""
Liveness and readiness probes.
"""
import logging
from typing import Dict, Tuple

from fastapi import APIRouter, Request

from ...config import settings
from ...models.conversation import utcnow
from ...models.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()

# Worst status wins when components disagree
_SEVERITY = {"healthy": 0, "degraded": 1, "unhealthy": 2}


async def _probe_history_store(state) -> Tuple[str, str]:
    store = getattr(state, "history_store", None)
    if store is None:
        return "not_initialized", "unhealthy"

    try:
        health = await store.health_check()
    except Exception as e:
        logger.error(f"History store health check failed: {e}")
        return "unhealthy", "degraded"

    if health.get("healthy"):
        return "healthy", "healthy"
    return "unhealthy", "degraded"


@router.get("", response_model=HealthResponse)
async def health_check(request: Request):
    """Process is up and serving requests."""
    metrics = getattr(request.app.state, "metrics", None)
    return HealthResponse(
        status="healthy",
        timestamp=utcnow(),
        version=settings.app_version,
        uptime_seconds=metrics.get_stats()["uptime_seconds"] if metrics else None
    )


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(request: Request):
    """
    Component readiness.

    A missing agent or history store makes the service unhealthy; an
    unreachable store or empty FAQ index only degrades it.
    """
    state = request.app.state
    services: Dict[str, str] = {}
    verdicts = []

    services["history_store"], verdict = await _probe_history_store(state)
    verdicts.append(verdict)

    faq_index = getattr(state, "faq_index", None)
    faq_ready = faq_index is not None and len(faq_index) > 0
    services["faq_index"] = "healthy" if faq_ready else "unhealthy"
    verdicts.append("healthy" if faq_ready else "degraded")

    generator = getattr(state, "generator", None)
    services["provider"] = generator.name if generator is not None else "not_configured"

    agent_ready = getattr(state, "agent", None) is not None
    services["agent"] = "healthy" if agent_ready else "not_initialized"
    verdicts.append("healthy" if agent_ready else "unhealthy")

    return HealthResponse(
        status=max(verdicts, key=_SEVERITY.__getitem__),
        timestamp=utcnow(),
        version=settings.app_version,
        services=services
    )


@router.get("/live")
async def liveness_check():
    return {"status": "alive", "timestamp": utcnow().isoformat()}
