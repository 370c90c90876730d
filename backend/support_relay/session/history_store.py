"""
Abstract conversation history store interface.
Defines the contract for per-session message log persistence.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Set, Union

from ..models.conversation import Message, MessageRole


DEFAULT_HISTORY_TTL = 86400  # 24 hours


class HistoryStore(ABC):
    """
    Abstract base class for conversation history storage.

    Each session id maps to an ordered, append-only list of messages with a
    time-to-live that is refreshed on every append. Implementations must:
    - Never share history across session ids
    - Make appends for one session id safe under concurrent callers
    - Report store failures as empty results or False, never raise
    """

    @abstractmethod
    async def append(
        self,
        session_id: str,
        role: Union[MessageRole, str],
        content: str
    ) -> List[Message]:
        """
        Append a message stamped with the current time.

        Args:
            session_id: Session identifier
            role: Message role
            content: Message text

        Returns:
            Updated history, or an empty list if the write failed
        """
        pass

    @abstractmethod
    async def history(self, session_id: str) -> List[Message]:
        """
        Get the full history for a session.

        Returns:
            Ordered messages, empty if absent or expired
        """
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """
        Delete stored history. Idempotent.

        Returns:
            True unless the store failed
        """
        pass

    @abstractmethod
    async def list_session_ids(self) -> Set[str]:
        """
        List session ids currently holding history.

        Returns:
            Set of session ids
        """
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """
        Get history store statistics.

        Returns:
            Dictionary with statistics
        """
        pass

    async def tail(self, session_id: str, limit: int) -> List[Message]:
        """
        Most recent messages, oldest first.

        Returns exactly ``min(limit, len(history))`` messages. Not a
        destructive read.
        """
        if limit <= 0:
            return []
        messages = await self.history(session_id)
        return messages[-limit:]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on history store.

        Returns:
            Dictionary with health status
        """
        try:
            healthy = await self.ping()
            stats = await self.get_stats()
            return {"healthy": healthy, "stats": stats}
        except Exception as e:
            return {"healthy": False, "error": str(e)}


def coerce_role(role: Union[MessageRole, str]) -> MessageRole:
    """
    Normalize a role argument.

    Raises:
        ValueError: If the role is not user or assistant
    """
    if isinstance(role, MessageRole):
        return role
    return MessageRole(str(role).lower())


__all__ = ['HistoryStore', 'coerce_role', 'DEFAULT_HISTORY_TTL']
