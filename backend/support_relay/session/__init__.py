"""
Session management package.
History stores and the session registry.

Version: 1.0.0
"""
import logging

from .history_store import HistoryStore, DEFAULT_HISTORY_TTL
from .in_memory_history_store import InMemoryHistoryStore
from .redis_history_store import RedisHistoryStore
from .session_registry import SessionRegistry, generate_session_id, DEFAULT_SESSION_MAX_AGE

logger = logging.getLogger(__name__)


def create_history_store(settings) -> HistoryStore:
    """
    Build the history store selected by configuration.

    Args:
        settings: Application settings

    Returns:
        HistoryStore instance
    """
    from ..config import HistoryStoreType

    if settings.history_store_type == HistoryStoreType.REDIS:
        logger.info("Using Redis history store")
        return RedisHistoryStore(
            redis_url=settings.redis_url,
            key_prefix=settings.history_key_prefix,
            default_ttl=settings.history_ttl_seconds,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_connect_timeout,
            retry_on_timeout=settings.redis_retry_on_timeout,
            health_check_interval=settings.redis_health_check_interval
        )

    logger.info("Using in-memory history store")
    return InMemoryHistoryStore(default_ttl=settings.history_ttl_seconds)


__all__ = [
    'HistoryStore',
    'InMemoryHistoryStore',
    'RedisHistoryStore',
    'SessionRegistry',
    'create_history_store',
    'generate_session_id',
    'DEFAULT_HISTORY_TTL',
    'DEFAULT_SESSION_MAX_AGE'
]
