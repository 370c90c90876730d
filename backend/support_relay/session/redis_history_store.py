"""
Redis-backed history store implementation.
Suitable for production multi-instance deployments.

Version: 1.0.0

Persisted layout: ``<prefix><session_id>:history`` holds the JSON-encoded
message list, with the TTL reset on every append.
"""
import asyncio
import json
import logging
import weakref
from typing import Any, Dict, List, Optional, Set, Union

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import (
    RedisError,
    ResponseError,
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError
)

from .history_store import HistoryStore, coerce_role, DEFAULT_HISTORY_TTL
from ..models.conversation import (
    Message,
    MessageRole,
    dump_history,
    load_history
)
from ..utils.retry import BackoffPolicy, with_backoff

logger = logging.getLogger(__name__)

HISTORY_KEY_SUFFIX = ":history"

REDIS_BACKOFF = BackoffPolicy(
    attempts=3,
    base_delay=0.1,
    max_delay=2.0,
    jitter=0.1,
    retry_on=(RedisConnectionError, RedisTimeoutError)
)

# Appends are not resent after a timeout: the write may already have landed
APPEND_BACKOFF = BackoffPolicy(
    attempts=3,
    base_delay=0.1,
    max_delay=2.0,
    jitter=0.1,
    retry_on=(RedisConnectionError,)
)


class RedisHistoryStore(HistoryStore):
    """
    Redis-backed implementation of HistoryStore.

    Features:
    - Atomic append via a server-side Lua script
    - Per-session lock fallback when scripting is unavailable
    - TTL refreshed on every append
    - Reads and deletes retry on connection and timeout errors; appends
      retry on connection errors only and skip a resent entry
    - Store failures degrade to empty results instead of raising
    """

    # Lua script for atomic append; the whole read-modify-write runs on the server
    APPEND_SCRIPT = """
    local key = KEYS[1]
    local entry_json = ARGV[1]
    local ttl = tonumber(ARGV[2])

    local history = {}
    local current = redis.call('GET', key)
    if current then
        local ok, decoded = pcall(cjson.decode, current)
        if ok and type(decoded) == 'table' then
            history = decoded
        end
    end

    local entry = cjson.decode(entry_json)
    local last = history[#history]
    if last and last.role == entry.role and last.content == entry.content
            and last.timestamp == entry.timestamp then
        return current
    end

    table.insert(history, entry)

    local encoded = cjson.encode(history)
    redis.call('SET', key, encoded, 'EX', ttl)

    return encoded
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "session:",
        default_ttl: int = DEFAULT_HISTORY_TTL,
        max_connections: int = 50,
        socket_timeout: int = 5,
        socket_connect_timeout: int = 5,
        retry_on_timeout: bool = False,
        health_check_interval: int = 30,
        client: Optional[Redis] = None
    ):
        """
        Initialize Redis history store.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for history keys
            default_ttl: TTL in seconds, refreshed on every append
            max_connections: Maximum connection pool size
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
            retry_on_timeout: Let the client resend commands on timeout
            health_check_interval: Health check interval in seconds
            client: Pre-built client (skips pool creation)
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl

        self.pool = None
        if client is None:
            self.pool = redis.ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_connect_timeout,
                retry_on_timeout=retry_on_timeout,
                decode_responses=True,
                health_check_interval=health_check_interval,
                socket_keepalive=True
            )
            client = Redis(connection_pool=self.pool)

        self.client: Redis = client
        self.append_script = self.client.register_script(self.APPEND_SCRIPT)
        self.scripting_available = True

        # Used only when the Lua script cannot run; entries vanish once unused
        self._session_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

        logger.info(
            f"RedisHistoryStore initialized "
            f"(url={redis_url}, prefix={key_prefix}, ttl={default_ttl}s)"
        )

    def _make_key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}{HISTORY_KEY_SUFFIX}"

    def _session_id_from_key(self, key: str) -> Optional[str]:
        if isinstance(key, bytes):
            key = key.decode()
        if not key.startswith(self.key_prefix) or not key.endswith(HISTORY_KEY_SUFFIX):
            return None
        session_id = key[len(self.key_prefix):-len(HISTORY_KEY_SUFFIX)]
        return session_id or None

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    @with_backoff(REDIS_BACKOFF)
    async def _get_raw(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    @with_backoff(APPEND_BACKOFF)
    async def _append_atomic(self, key: str, entry_json: str) -> str:
        return await self.append_script(keys=[key], args=[entry_json, self.default_ttl])

    @with_backoff(APPEND_BACKOFF)
    async def _append_locked(self, session_id: str, key: str, message: Message) -> List[Message]:
        async with self._lock_for(session_id):
            messages = load_history(await self.client.get(key))
            if messages and messages[-1] == message:
                return messages
            messages.append(message)
            await self.client.set(key, dump_history(messages), ex=self.default_ttl)
            return messages

    async def append(
        self,
        session_id: str,
        role: Union[MessageRole, str],
        content: str
    ) -> List[Message]:
        message = Message(role=coerce_role(role), content=content)
        key = self._make_key(session_id)

        try:
            if self.scripting_available:
                try:
                    encoded = await self._append_atomic(key, json.dumps(message.to_dict()))
                    return load_history(encoded)
                except ResponseError as e:
                    logger.warning(
                        f"Lua append unavailable, falling back to locked append: {e}"
                    )
                    self.scripting_available = False

            return await self._append_locked(session_id, key, message)

        except RedisError as e:
            logger.error(
                f"Redis error appending to session {session_id}: {e}",
                extra={"session_id": session_id}
            )
            return []

    async def history(self, session_id: str) -> List[Message]:
        try:
            raw = await self._get_raw(self._make_key(session_id))
        except RedisError as e:
            logger.error(
                f"Redis error reading history for session {session_id}: {e}",
                extra={"session_id": session_id}
            )
            return []

        return load_history(raw)

    @with_backoff(REDIS_BACKOFF)
    async def _delete_key(self, key: str) -> int:
        return await self.client.delete(key)

    async def delete(self, session_id: str) -> bool:
        try:
            removed = await self._delete_key(self._make_key(session_id))
        except RedisError as e:
            logger.error(
                f"Redis error deleting history for session {session_id}: {e}",
                extra={"session_id": session_id}
            )
            return False

        self._session_locks.pop(session_id, None)
        if removed:
            logger.debug(f"Deleted history for session {session_id}")
        return True

    async def list_session_ids(self) -> Set[str]:
        pattern = f"{self.key_prefix}*{HISTORY_KEY_SUFFIX}"
        session_ids = set()

        try:
            async for key in self.client.scan_iter(match=pattern, count=100):
                session_id = self._session_id_from_key(key)
                if session_id:
                    session_ids.add(session_id)
        except RedisError as e:
            logger.error(f"Redis error listing history keys: {e}")
            return set()

        return session_ids

    async def ttl(self, session_id: str) -> Optional[int]:
        """Remaining TTL in seconds, None if no history is stored."""
        try:
            remaining = await self.client.ttl(self._make_key(session_id))
        except RedisError as e:
            logger.error(f"Redis error reading TTL for session {session_id}: {e}")
            return None
        return remaining if remaining is not None and remaining >= 0 else None

    async def get_stats(self) -> Dict[str, Any]:
        stats = {
            "store_type": "redis",
            "key_prefix": self.key_prefix,
            "default_ttl": self.default_ttl,
            "atomic_append": self.scripting_available
        }

        try:
            stats["sessions_with_history"] = len(await self.list_session_ids())
            memory_info = await self.client.info('memory')
            stats["used_memory_human"] = memory_info.get('used_memory_human', 'unknown')
        except RedisError as e:
            logger.error(f"Redis error getting stats: {e}")
            stats["error"] = str(e)

        return stats

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        if self.pool is not None:
            await self.pool.disconnect()
        logger.info("✓ Closed Redis connection")


__all__ = ['RedisHistoryStore', 'HISTORY_KEY_SUFFIX']
