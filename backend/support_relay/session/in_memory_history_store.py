"""
In-memory history store implementation.
Suitable for development, tests and single-instance deployments.

Version: 1.0.0
"""
import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Union

from .history_store import HistoryStore, coerce_role, DEFAULT_HISTORY_TTL
from ..models.conversation import Message, MessageRole, utcnow

logger = logging.getLogger(__name__)


class InMemoryHistoryStore(HistoryStore):
    """
    In-memory implementation of HistoryStore.

    Features:
    - Appends serialized by a single asyncio lock
    - TTL refreshed on every append, checked lazily on read
    - Least-recently-written eviction when max_sessions is reached

    Limitations:
    - History lost on restart
    - Not shared across multiple instances
    """

    def __init__(
        self,
        max_sessions: int = 10000,
        default_ttl: int = DEFAULT_HISTORY_TTL
    ):
        """
        Initialize in-memory history store.

        Args:
            max_sessions: Maximum number of session histories to keep
            default_ttl: TTL in seconds, refreshed on every append
        """
        self.histories: "OrderedDict[str, List[Message]]" = OrderedDict()
        self.expiry: Dict[str, datetime] = {}
        self.max_sessions = max_sessions
        self.default_ttl = default_ttl
        self.lock = asyncio.Lock()

        logger.info(
            f"InMemoryHistoryStore initialized "
            f"(max_sessions={max_sessions}, default_ttl={default_ttl}s)"
        )

    def _is_expired(self, session_id: str, now: datetime) -> bool:
        expires_at = self.expiry.get(session_id)
        return expires_at is not None and now >= expires_at

    def _drop(self, session_id: str) -> None:
        self.histories.pop(session_id, None)
        self.expiry.pop(session_id, None)

    def _evict_if_full(self) -> None:
        while len(self.histories) >= self.max_sessions:
            oldest_id, _ = self.histories.popitem(last=False)
            self.expiry.pop(oldest_id, None)
            logger.info(f"Evicted history for session {oldest_id} (store full)")

    async def append(
        self,
        session_id: str,
        role: Union[MessageRole, str],
        content: str
    ) -> List[Message]:
        message = Message(role=coerce_role(role), content=content)

        async with self.lock:
            now = utcnow()

            if self._is_expired(session_id, now):
                self._drop(session_id)

            if session_id not in self.histories:
                self._evict_if_full()
                self.histories[session_id] = []

            self.histories[session_id].append(message)
            self.histories.move_to_end(session_id)
            self.expiry[session_id] = now + timedelta(seconds=self.default_ttl)

            logger.debug(
                f"Appended {message.role.value} message to session {session_id} "
                f"({len(self.histories[session_id])} messages)"
            )
            return list(self.histories[session_id])

    async def history(self, session_id: str) -> List[Message]:
        async with self.lock:
            if self._is_expired(session_id, utcnow()):
                self._drop(session_id)
                logger.debug(f"History for session {session_id} expired and removed")
                return []

            return list(self.histories.get(session_id, []))

    async def delete(self, session_id: str) -> bool:
        async with self.lock:
            if session_id in self.histories:
                logger.debug(f"Deleted history for session {session_id}")
            self._drop(session_id)
            return True

    async def list_session_ids(self) -> Set[str]:
        async with self.lock:
            now = utcnow()
            return {
                sid for sid in self.histories.keys()
                if not self._is_expired(sid, now)
            }

    async def cleanup_expired(self) -> int:
        """Remove expired histories eagerly. Returns the number removed."""
        async with self.lock:
            now = utcnow()
            expired = [sid for sid in list(self.histories.keys()) if self._is_expired(sid, now)]
            for session_id in expired:
                self._drop(session_id)

            if expired:
                logger.info(f"Cleaned up {len(expired)} expired histories")
            return len(expired)

    async def ttl(self, session_id: str) -> Optional[int]:
        """Remaining TTL in seconds, None if no history is stored."""
        async with self.lock:
            expires_at = self.expiry.get(session_id)
            if expires_at is None:
                return None
            return max(int((expires_at - utcnow()).total_seconds()), 0)

    async def get_stats(self) -> Dict[str, Any]:
        async with self.lock:
            now = utcnow()
            active = [sid for sid in self.histories if not self._is_expired(sid, now)]
            return {
                "store_type": "in_memory",
                "sessions_with_history": len(active),
                "total_messages": sum(len(self.histories[sid]) for sid in active),
                "max_sessions": self.max_sessions,
                "default_ttl": self.default_ttl
            }


__all__ = ['InMemoryHistoryStore']
