"""
Session registry.
In-memory map of session metadata guarded by a single asyncio lock.

Version: 1.0.0
"""
import asyncio
import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from .history_store import HistoryStore
from ..models.conversation import (
    ActiveSession,
    EscalationOutcome,
    Session,
    utcnow
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = timedelta(hours=24)

_SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    """
    Generate an opaque session id.

    Format: ``session_<epoch milliseconds>_<9 random base36 chars>``.
    """
    millis = int(time.time() * 1000)
    suffix = ''.join(secrets.choice(_SESSION_ID_ALPHABET) for _ in range(9))
    return f"session_{millis}_{suffix}"


class SessionRegistry:
    """
    Registry of live sessions.

    Every mutation, including the periodic sweep, happens under one
    ``asyncio.Lock``. Sessions handed out are copies, so callers cannot
    mutate registry state without going through the registry.

    The registry holds the history store so that deleting a session also
    deletes its stored history and ``list_active`` can attach it.
    """

    def __init__(self, history_store: HistoryStore):
        self.history_store = history_store
        self.sessions: Dict[str, Session] = {}
        self.lock = asyncio.Lock()

        logger.info("SessionRegistry initialized")

    async def create(self, session_id: Optional[str] = None) -> Session:
        """
        Register a new session.

        Creating an id that is already registered returns the existing
        session unchanged.

        Args:
            session_id: Session identifier (generated when omitted)

        Returns:
            Copy of the registered session
        """
        session_id = session_id or generate_session_id()

        async with self.lock:
            existing = self.sessions.get(session_id)
            if existing is not None:
                return existing.model_copy(deep=True)

            session = Session(session_id=session_id)
            self.sessions[session_id] = session

        logger.info(f"Created session {session_id}", extra={"session_id": session_id})
        return session.model_copy(deep=True)

    async def get(self, session_id: str) -> Optional[Session]:
        async with self.lock:
            session = self.sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    async def get_or_create(self, session_id: str) -> Session:
        """
        Get a session, registering it on first contact.

        An existing session has its ``last_activity`` refreshed.
        """
        async with self.lock:
            session = self.sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id)
                self.sessions[session_id] = session
                logger.info(
                    f"Created session {session_id} on first contact",
                    extra={"session_id": session_id}
                )
            else:
                session.touch()

            return session.model_copy(deep=True)

    async def touch(self, session_id: str) -> bool:
        """Refresh ``last_activity``. Returns False for unknown ids."""
        async with self.lock:
            session = self.sessions.get(session_id)
            if session is None:
                return False
            session.touch()
            return True

    async def escalate(self, session_id: str, reason: str) -> Optional[EscalationOutcome]:
        """
        Mark a session as escalated.

        Escalation happens at most once: the first reason and time are
        kept and later calls report ``already_escalated``.

        Args:
            session_id: Session identifier
            reason: Escalation reason

        Returns:
            EscalationOutcome, or None if the session is unknown
        """
        async with self.lock:
            session = self.sessions.get(session_id)
            if session is None:
                return None

            if session.escalated:
                return EscalationOutcome(
                    session=session.model_copy(deep=True),
                    already_escalated=True
                )

            session.mark_escalated(reason)
            snapshot = session.model_copy(deep=True)

        logger.info(
            f"Session {session_id} escalated: {reason}",
            extra={"session_id": session_id, "escalation_reason": reason}
        )
        return EscalationOutcome(session=snapshot, already_escalated=False)

    async def is_escalated(self, session_id: str) -> bool:
        async with self.lock:
            session = self.sessions.get(session_id)
            return bool(session and session.escalated)

    async def delete(self, session_id: str) -> bool:
        """
        Remove a session and its stored history.

        History is deleted even when the registry has no entry, so stale
        history left by a restart is not kept around.

        Returns:
            True if the session was registered
        """
        async with self.lock:
            existed = self.sessions.pop(session_id, None) is not None

        if not await self.history_store.delete(session_id):
            logger.warning(
                f"Failed to delete history for session {session_id}",
                extra={"session_id": session_id}
            )

        if existed:
            logger.info(f"Deleted session {session_id}", extra={"session_id": session_id})
        return existed

    async def list_active(self) -> List[ActiveSession]:
        """
        List registered sessions with their current history.

        The registry is snapshotted under the lock; history is read
        afterwards so store latency never blocks registry mutations.
        """
        async with self.lock:
            snapshot = [s.model_copy(deep=True) for s in self.sessions.values()]

        active = []
        for session in snapshot:
            history = await self.history_store.history(session.session_id)
            active.append(ActiveSession(session=session, history=history))
        return active

    async def sweep_expired(
        self,
        max_age: Union[timedelta, int, float] = DEFAULT_SESSION_MAX_AGE,
        now: Optional[datetime] = None
    ) -> int:
        """
        Remove sessions idle longer than ``max_age``.

        Stored history is left to expire through its own TTL.

        Args:
            max_age: Maximum idle time (timedelta or seconds)
            now: Reference time (defaults to current UTC time)

        Returns:
            Number of sessions removed
        """
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        now = now or utcnow()
        cutoff = now - max_age

        async with self.lock:
            expired = [
                session_id for session_id, session in self.sessions.items()
                if session.last_activity < cutoff
            ]
            for session_id in expired:
                del self.sessions[session_id]

        if expired:
            logger.info(f"Swept {len(expired)} inactive sessions")
        return len(expired)

    async def count(self) -> int:
        async with self.lock:
            return len(self.sessions)


__all__ = [
    'SessionRegistry',
    'generate_session_id',
    'DEFAULT_SESSION_MAX_AGE'
]
