"""
Provider call wrapper with timeout, retry logic and circuit breakers.
Every request to a text-generation provider goes through call_provider.

Version: 1.0.0
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional, Sequence

from aiobreaker import CircuitBreaker, CircuitBreakerError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log
)

from .base import TextGenerator, ProviderError, ProviderTimeoutError
from ..models.conversation import Message
from ..utils.telemetry import track_provider_call

logger = logging.getLogger(__name__)


class ProviderUnavailableError(ProviderError):
    """Circuit breaker is open for the provider."""
    pass


# ===========================
# Circuit Breaker Configuration
# ===========================

@dataclass
class CircuitBreakerConfig:
    """Configuration for provider circuit breakers."""
    fail_max: int = 5
    timeout: int = 60


# Circuit breakers per provider name
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    provider_name: str,
    config: Optional[CircuitBreakerConfig] = None
) -> CircuitBreaker:
    """
    Get or create the circuit breaker for a provider.

    Args:
        provider_name: Provider identifier
        config: Circuit breaker configuration (used on creation only)

    Returns:
        Async circuit breaker instance
    """
    if provider_name not in _circuit_breakers:
        config = config or CircuitBreakerConfig()
        _circuit_breakers[provider_name] = CircuitBreaker(
            fail_max=config.fail_max,
            timeout_duration=timedelta(seconds=config.timeout),
            name=provider_name
        )
        logger.info(
            f"Created circuit breaker for provider '{provider_name}': "
            f"fail_max={config.fail_max}, timeout={config.timeout}s"
        )

    return _circuit_breakers[provider_name]


def reset_circuit_breakers() -> None:
    """Drop all circuit breakers; they are recreated closed on next use."""
    _circuit_breakers.clear()
    logger.info("All provider circuit breakers reset")


def get_breaker_states() -> Dict[str, Dict[str, Any]]:
    return {
        name: {
            "state": str(cb.current_state),
            "fail_counter": cb.fail_counter
        }
        for name, cb in _circuit_breakers.items()
    }


# ===========================
# Retry Configuration
# ===========================

@dataclass
class ProviderRetryConfig:
    """Retry policy for transient provider failures."""
    max_attempts: int = 2
    wait_multiplier: float = 0.5
    wait_min: float = 0.5
    wait_max: float = 4.0


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and bool(exc.retryable)


def create_retry_decorator(config: ProviderRetryConfig):
    """
    Create retry decorator with configuration.

    Only transport failures, timeouts and 429/5xx responses are retried.
    """
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.wait_multiplier,
            min=config.wait_min,
            max=config.wait_max
        ),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


# ===========================
# Call Context
# ===========================

@asynccontextmanager
async def provider_call_context(provider_name: str, session_id: Optional[str] = None):
    """Log and time a provider call, recording its outcome."""
    start_time = time.time()
    log_context = {"provider": provider_name, "session_id": session_id}

    logger.debug(f"Provider call started: {provider_name}", extra=log_context)

    try:
        yield
    except Exception as e:
        duration = time.time() - start_time
        track_provider_call(provider_name, "error", duration)
        logger.error(
            f"Provider call failed: {provider_name} "
            f"(duration: {duration:.3f}s, error: {e})",
            extra={
                **log_context,
                "duration_seconds": duration,
                "error_type": type(e).__name__
            }
        )
        raise

    duration = time.time() - start_time
    track_provider_call(provider_name, "success", duration)
    logger.info(
        f"Provider call completed: {provider_name} (duration: {duration:.3f}s)",
        extra={**log_context, "duration_seconds": duration}
    )


async def call_provider(
    generator: TextGenerator,
    system_instruction: str,
    history: Sequence[Message],
    message: str,
    timeout: float,
    retry_config: Optional[ProviderRetryConfig] = None,
    circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
    session_id: Optional[str] = None
) -> str:
    """
    Call a provider with timeout, retry and circuit breaker.

    Args:
        generator: Provider adapter
        system_instruction: Instruction framing the conversation
        history: Prior turns, oldest first
        message: New user message
        timeout: Per-attempt timeout in seconds
        retry_config: Retry policy (default: 2 attempts)
        circuit_breaker_config: Breaker thresholds for this provider
        session_id: Session identifier for logging

    Returns:
        Reply text

    Raises:
        ProviderError: When every attempt failed or the circuit is open
    """
    breaker = get_circuit_breaker(generator.name, circuit_breaker_config)
    retry_decorator = create_retry_decorator(retry_config or ProviderRetryConfig())

    @retry_decorator
    async def execute_with_timeout() -> str:
        try:
            return await asyncio.wait_for(
                generator.generate(system_instruction, history, message),
                timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"Provider '{generator.name}' timed out after {timeout}s",
                provider=generator.name
            ) from e

    async with provider_call_context(generator.name, session_id):
        try:
            return await breaker.call_async(execute_with_timeout)
        except CircuitBreakerError as e:
            logger.warning(
                f"Circuit breaker open for provider '{generator.name}': {e}",
                extra={"provider": generator.name, "session_id": session_id}
            )
            raise ProviderUnavailableError(
                f"Provider '{generator.name}' temporarily unavailable",
                provider=generator.name
            ) from e


__all__ = [
    'call_provider',
    'provider_call_context',
    'CircuitBreakerConfig',
    'ProviderRetryConfig',
    'ProviderUnavailableError',
    'get_circuit_breaker',
    'reset_circuit_breakers',
    'get_breaker_states'
]
