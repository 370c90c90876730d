"""
Background session sweeper.
Periodically removes registry entries that have been idle too long.

Version: 1.0.0
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional, Union

from ..session import InMemoryHistoryStore, SessionRegistry, DEFAULT_SESSION_MAX_AGE
from ..utils.telemetry import track_sessions_swept, update_active_sessions

logger = logging.getLogger(__name__)


class SessionSweeper:
    """
    Scheduled sweep of inactive sessions.

    Runs as an ``asyncio.Task`` owned by this object. A failing tick is
    logged and the loop keeps going. The sweep itself takes the registry
    lock, so it is safe alongside live traffic.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        interval: float = 3600,
        max_age: Union[timedelta, int, float] = DEFAULT_SESSION_MAX_AGE
    ):
        self.registry = registry
        self.interval = interval
        self.max_age = max_age if isinstance(max_age, timedelta) else timedelta(seconds=max_age)

        self._task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """
        Run one sweep.

        Returns:
            Number of sessions removed
        """
        removed = await self.registry.sweep_expired(self.max_age)
        track_sessions_swept(removed)

        # In-memory history expires lazily; drop it eagerly on each tick
        history_store = self.registry.history_store
        if isinstance(history_store, InMemoryHistoryStore):
            await history_store.cleanup_expired()

        update_active_sessions(await self.registry.count())

        if removed > 0:
            logger.info(f"Periodic cleanup: removed {removed} inactive sessions")
        return removed

    async def _run(self) -> None:
        logger.info(
            f"Session sweeper started (interval={self.interval}s, "
            f"max_age={self.max_age.total_seconds():.0f}s)"
        )

        while not self._shutdown_event.is_set():
            try:
                # Wait for the interval or shutdown
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in session sweep: {e}", exc_info=True)

        logger.info("Session sweeper stopped")

    def start(self) -> asyncio.Task:
        """Start the background task. Calling start twice is a no-op."""
        if self.running:
            return self._task

        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        return self._task

    async def stop(self, timeout: float = 5.0) -> None:
        """Signal shutdown and wait for the task, cancelling it if needed."""
        if self._task is None:
            return

        self._shutdown_event.set()

        if not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Session sweeper did not stop in time, cancelling...")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    logger.info("✓ Session sweeper cancelled")

        self._task = None


__all__ = ['SessionSweeper']
