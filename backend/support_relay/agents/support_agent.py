"""
Customer support agent.
Per-turn orchestration of the session registry, history store and
response resolver for the HTTP layer.

Version: 1.0.0
"""
import logging
import time
import uuid
from typing import List, Optional

from .resolver import ResponseResolver
from ..models.conversation import (
    ActiveSession,
    Confidence,
    EscalationOutcome,
    MessageRole,
    ResolutionResult,
    Session,
    TurnResult
)
from ..session import HistoryStore, SessionRegistry, generate_session_id
from ..utils.telemetry import MetricsCollector, update_active_sessions

logger = logging.getLogger(__name__)


LOW_CONFIDENCE_REASON = "Bot unable to answer query confidently"
NEEDS_ASSISTANCE_REASON = "User query requires human assistance"
MANUAL_ESCALATION_REASON = "User requested human assistance"


def escalation_reason_for(resolution: ResolutionResult) -> str:
    """Registry reason recorded when a resolution asks for a human."""
    if resolution.escalation_reason is not None:
        return resolution.escalation_reason.value
    if resolution.confidence == Confidence.LOW:
        return LOW_CONFIDENCE_REASON
    return NEEDS_ASSISTANCE_REASON


class CustomerSupportAgent:
    """
    Customer support agent.

    Turn ordering is fixed:
    1. Register the session or refresh its activity
    2. Record the user turn
    3. Resolve the message
    4. Record the reply
    5. Escalate the session if the resolution asks for a human

    The user turn is recorded exactly once, even when resolution falls
    back to the error response.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        history_store: HistoryStore,
        resolver: ResponseResolver,
        metrics: Optional[MetricsCollector] = None
    ):
        self.registry = registry
        self.history_store = history_store
        self.resolver = resolver
        self.metrics = metrics or MetricsCollector()

        logger.info("CustomerSupportAgent initialized")

    async def new_session(self) -> Session:
        session = await self.registry.create(generate_session_id())
        update_active_sessions(await self.registry.count())
        return session

    async def process_message(
        self,
        session_id: str,
        message: str,
        request_id: Optional[str] = None
    ) -> TurnResult:
        """
        Process a user message and record the turn.

        Args:
            session_id: Session identifier
            message: User message
            request_id: Request correlation ID

        Returns:
            TurnResult with the resolution and escalation status
        """
        start_time = time.time()
        request_id = request_id or str(uuid.uuid4())
        log_extra = {"session_id": session_id, "request_id": request_id}

        try:
            await self.registry.get_or_create(session_id)

            recorded = bool(await self.history_store.append(session_id, MessageRole.USER, message))
            if not recorded:
                logger.warning(f"User turn not recorded for session {session_id}", extra=log_extra)
            self.metrics.record_message(MessageRole.USER.value)

            resolution = await self.resolver.resolve(
                message,
                session_id,
                exclude_last_user_turn=recorded
            )

            history = await self.history_store.append(
                session_id,
                MessageRole.ASSISTANT,
                resolution.response_text
            )
            if not history:
                logger.warning(f"Reply not recorded for session {session_id}", extra=log_extra)
            self.metrics.record_message(MessageRole.ASSISTANT.value)

            escalated = False
            if resolution.needs_escalation:
                escalated = await self._escalate_for(session_id, resolution)

            processing_time = time.time() - start_time
            logger.info(
                f"Processed message for session {session_id} "
                f"(source={resolution.source}, escalated={escalated}, {processing_time:.3f}s)",
                extra={**log_extra, "source": resolution.source}
            )

            update_active_sessions(await self.registry.count())

            return TurnResult(
                session_id=session_id,
                resolution=resolution,
                escalated=escalated,
                history_length=len(history),
                metadata={
                    "request_id": request_id,
                    "processing_time": processing_time,
                    "faq_matched": resolution.faq_matched
                }
            )

        except Exception as e:
            logger.error(
                f"Error processing message for session {session_id}: {e}",
                extra=log_extra,
                exc_info=True
            )
            self.metrics.record_error()

            return TurnResult(
                session_id=session_id,
                resolution=self.resolver.fallback_result(),
                escalated=False,
                metadata={"request_id": request_id, "error": True}
            )

    async def _escalate_for(self, session_id: str, resolution: ResolutionResult) -> bool:
        reason = escalation_reason_for(resolution)
        outcome = await self.registry.escalate(session_id, reason)

        if outcome is None or outcome.already_escalated:
            return False

        self.metrics.record_escalation(
            resolution.escalation_reason.value if resolution.escalation_reason else resolution.source
        )
        return True

    async def get_session_detail(self, session_id: str) -> Optional[ActiveSession]:
        session = await self.registry.get(session_id)
        if session is None:
            return None

        history = await self.history_store.history(session_id)
        return ActiveSession(session=session, history=history)

    async def end_session(self, session_id: str) -> bool:
        """Delete a session and its history. False if it was unknown."""
        deleted = await self.registry.delete(session_id)
        update_active_sessions(await self.registry.count())
        return deleted

    async def escalate_session(
        self,
        session_id: str,
        reason: Optional[str] = None
    ) -> Optional[EscalationOutcome]:
        """
        Escalate on explicit request.

        Returns:
            EscalationOutcome, or None if the session is unknown
        """
        reason = reason or MANUAL_ESCALATION_REASON
        outcome = await self.registry.escalate(session_id, reason)

        if outcome is not None and not outcome.already_escalated:
            self.metrics.record_escalation("manual")
        return outcome

    async def list_sessions(self) -> List[ActiveSession]:
        return await self.registry.list_active()

    async def handoff_summary(self, session_id: str) -> Optional[str]:
        """Transcript for the human agent, None if the session is unknown."""
        if await self.registry.get(session_id) is None:
            return None

        history = await self.history_store.history(session_id)
        return self.resolver.summarize_conversation(history)


__all__ = [
    'CustomerSupportAgent',
    'escalation_reason_for',
    'LOW_CONFIDENCE_REASON',
    'NEEDS_ASSISTANCE_REASON',
    'MANUAL_ESCALATION_REASON'
]
