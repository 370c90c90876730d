"""
Backoff retries for async calls to network collaborators.
Used by the Redis history store; provider calls go through tenacity in
``llm.call_wrapper``.

Version: 1.0.0
"""
import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with an optional jitter fraction."""
    attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    multiplier: float = 2.0
    jitter: float = 0.0
    retry_on: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError)

    def delays(self) -> Iterator[float]:
        """Sleep before each retry; yields ``attempts - 1`` values."""
        for attempt in range(max(self.attempts - 1, 0)):
            delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
            if self.jitter:
                delay += delay * random.uniform(0, self.jitter)
            yield delay


def with_backoff(policy: Optional[BackoffPolicy] = None):
    """
    Retry an async callable on the exceptions named by ``policy.retry_on``.

    Other exceptions propagate immediately. Once the attempts are used up,
    the last error is re-raised unchanged so callers keep their own
    error handling.

    Example:
        @with_backoff(BackoffPolicy(retry_on=(RedisConnectionError,)))
        async def read(key):
            ...
    """
    policy = policy or BackoffPolicy()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            delays = policy.delays()
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except policy.retry_on as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise
                    logger.warning(
                        f"{func.__name__} raised {type(e).__name__} "
                        f"(attempt {attempt}/{policy.attempts}), retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator


__all__ = ['BackoffPolicy', 'with_backoff']
