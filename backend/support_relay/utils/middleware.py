"""
HTTP middleware: request correlation, timing and rate limiting.
"""
import logging
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Correlate and time every request.

    A client-supplied ``X-Request-ID`` is reused when it is short enough,
    otherwise a UUID is generated. The id lands on ``request.state`` for
    handlers and log records, and is echoed back with ``X-Process-Time``.
    """

    def __init__(self, app, slow_request_threshold: float = 1.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    @staticmethod
    def _request_id(request: Request) -> str:
        supplied = request.headers.get("X-Request-ID", "").strip()
        if supplied and len(supplied) <= MAX_REQUEST_ID_LENGTH:
            return supplied
        return str(uuid.uuid4())

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = self._request_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"

        # Chat turns that wait on a provider are the usual offenders
        if elapsed > self.slow_request_threshold:
            logger.warning(
                f"Slow request {request.method} {request.url.path}: {elapsed:.2f}s",
                extra={"request_id": request_id}
            )
        else:
            logger.debug(
                f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.3f}s)",
                extra={"request_id": request_id}
            )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-client sliding-window limit, in process memory.

    Clients are keyed by socket address. Behind a reverse proxy set
    ``trust_forwarded`` so the first ``X-Forwarded-For`` hop is used instead.
    Probe and scrape paths are never limited. Idle clients are dropped once
    per period.
    """

    exempt_prefixes = ("/health", "/metrics")

    def __init__(self, app, calls: int = 100, period: int = 60, trust_forwarded: bool = False):
        super().__init__(app)
        self.calls = calls
        self.period = period
        self.trust_forwarded = trust_forwarded
        self.windows: Dict[str, Deque[float]] = {}
        self.last_purge = time.monotonic()

    def client_key(self, request: Request) -> str:
        if self.trust_forwarded:
            forwarded = request.headers.get("X-Forwarded-For", "")
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
        return request.client.host if request.client else "unknown"

    def admit(self, key: str) -> bool:
        """Record a hit for ``key``; False once the window is full."""
        now = time.monotonic()
        if now - self.last_purge >= self.period:
            self.purge_idle(now)

        window = self.windows.setdefault(key, deque())

        while window and now - window[0] >= self.period:
            window.popleft()

        if len(window) >= self.calls:
            return False

        window.append(now)
        return True

    def purge_idle(self, now: float) -> None:
        """Forget clients with no hits inside the current window."""
        idle = [
            key for key, window in self.windows.items()
            if not window or now - window[-1] >= self.period
        ]
        for key in idle:
            del self.windows[key]
        self.last_purge = now

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)

        key = self.client_key(request)
        if not self.admit(key):
            logger.warning(f"Rate limit hit for {key} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "Too many requests, please slow down and try again shortly."
                },
                headers={
                    "Retry-After": str(self.period),
                    "X-RateLimit-Limit": str(self.calls)
                }
            )

        response = await call_next(request)
        remaining = self.calls - len(self.windows.get(key, ()))
        response.headers["X-RateLimit-Limit"] = str(self.calls)
        response.headers["X-RateLimit-Remaining"] = str(max(remaining, 0))
        return response


__all__ = [
    'RequestContextMiddleware',
    'RateLimitMiddleware'
]
