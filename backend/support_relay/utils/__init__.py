"""
Utility modules for the application.
Provides retry logic, telemetry, and middleware.

Version: 1.0.0
"""
from .retry import BackoffPolicy, with_backoff
from .telemetry import (
    setup_telemetry,
    MetricsCollector
)
from .middleware import (
    RequestContextMiddleware,
    RateLimitMiddleware
)


__all__ = [
    # Retry
    'BackoffPolicy',
    'with_backoff',

    # Telemetry
    'setup_telemetry',
    'MetricsCollector',

    # Middleware
    'RequestContextMiddleware',
    'RateLimitMiddleware'
]
