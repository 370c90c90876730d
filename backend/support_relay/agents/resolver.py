"""
Response resolver.
Turns one user message into a resolution: FAQ answer, pre-provider
hand-off, provider reply or deterministic fallback.

Version: 1.0.0

Pipeline, in order:
1. FAQ best match (answers are trusted verbatim, no provider call)
2. User-side escalation check against the prior history
3. Bounded context from the tail of the stored history
4. Provider call with timeout, retry and circuit breaker
5. Assistant-side escalation check over the reply
6. Any failure degrades to a fixed apology that requests a human
"""
import logging
from typing import List, Optional, Sequence

from ..config import Settings, get_settings
from ..escalation import EscalationDetector
from ..faq import FAQIndex
from ..llm import (
    TextGenerator,
    CircuitBreakerConfig,
    ProviderRetryConfig,
    call_provider
)
from ..models.conversation import (
    Confidence,
    EscalationReason,
    Message,
    MessageRole,
    ResolutionResult,
    ResolutionSource
)
from ..session import HistoryStore
from ..utils.telemetry import track_resolution

logger = logging.getLogger(__name__)


HANDOFF_RESPONSE = (
    "I understand this is important to you. Let me connect you with a human agent "
    "who can better assist you with this matter. Please hold while I transfer you "
    "to our support team."
)

FALLBACK_RESPONSE = "I'm having trouble. Let me transfer you to a human agent."

SYSTEM_INSTRUCTION_TEMPLATE = (
    "You are a helpful customer support assistant.\n"
    "Use this chat history for reference:\n"
    "{history}\n"
    "If you cannot answer confidently based on the context, say: \"{handoff_phrase}\""
)

NO_HISTORY_PLACEHOLDER = "(no previous messages)"


def render_history(history: Sequence[Message]) -> str:
    """Render turns as ``User: ...`` / ``Assistant: ...`` lines."""
    if not history:
        return NO_HISTORY_PLACEHOLDER

    return "\n".join(
        f"{'User' if m.role == MessageRole.USER else 'Assistant'}: {m.content}"
        for m in history
    )


def summarize_conversation(history: Sequence[Message]) -> str:
    """
    Numbered transcript for a human agent taking over the conversation.

    Args:
        history: Conversation, oldest first

    Returns:
        Summary text
    """
    if not history:
        return "No conversation history available."

    lines = "\n".join(
        f"{idx}. {'Customer' if m.role == MessageRole.USER else 'Bot'}: {m.content}"
        for idx, m in enumerate(history, start=1)
    )
    return f"Conversation Summary:\n{lines}\n\nTotal messages: {len(history)}"


class ResponseResolver:
    """
    Resolve user messages into responses.

    ``resolve`` never persists and never raises; recording the user turn
    and the reply is the caller's job. The caller may record the user turn
    before resolving: a trailing user message equal to the incoming one is
    treated as the in-flight turn and left out of the prior history.
    """

    def __init__(
        self,
        faq_index: FAQIndex,
        history_store: HistoryStore,
        detector: EscalationDetector,
        generator: TextGenerator,
        settings: Optional[Settings] = None
    ):
        settings = settings or get_settings()

        self.faq_index = faq_index
        self.history_store = history_store
        self.detector = detector
        self.generator = generator

        self.match_threshold = settings.faq_match_threshold
        self.context_window = settings.context_window_messages
        self.timeout = settings.llm_timeout_seconds
        self.retry_config = ProviderRetryConfig(max_attempts=settings.llm_max_retries)
        self.circuit_breaker_config = CircuitBreakerConfig(
            fail_max=settings.llm_circuit_breaker_fail_max,
            timeout=settings.llm_circuit_breaker_timeout
        )

        logger.info(
            f"ResponseResolver initialized (provider={generator.name}, "
            f"threshold={self.match_threshold}, window={self.context_window})"
        )

    def build_system_instruction(self, history: Sequence[Message]) -> str:
        return SYSTEM_INSTRUCTION_TEMPLATE.format(
            history=render_history(history),
            handoff_phrase=self.detector.handoff_phrase
        )

    async def prior_history(
        self,
        session_id: str,
        exclude_last_user_turn: bool = False
    ) -> List[Message]:
        """Stored history, without the trailing user turn when the caller recorded it."""
        history = await self.history_store.history(session_id)
        if exclude_last_user_turn and history and history[-1].role == MessageRole.USER:
            history = history[:-1]
        return history

    async def resolve(
        self,
        message: str,
        session_id: str,
        exclude_last_user_turn: bool = False
    ) -> ResolutionResult:
        """
        Resolve one user message.

        Args:
            message: User message
            session_id: Session identifier
            exclude_last_user_turn: The message is already the last stored turn

        Returns:
            ResolutionResult (never raises)
        """
        try:
            result = await self._resolve(message, session_id, exclude_last_user_turn)
        except Exception as e:
            logger.error(
                f"Resolution failed for session {session_id}: {e}",
                extra={"session_id": session_id},
                exc_info=True
            )
            result = self.fallback_result()

        track_resolution(result.source, result.confidence.value)
        return result

    async def _resolve(
        self,
        message: str,
        session_id: str,
        exclude_last_user_turn: bool
    ) -> ResolutionResult:
        match = self.faq_index.best_match(message, self.match_threshold)
        if match is not None:
            logger.info(
                f"FAQ match {match.entry.id} (score {match.relevance_score}) "
                f"for session {session_id}",
                extra={"session_id": session_id}
            )
            return ResolutionResult(
                response_text=match.entry.answer,
                source=ResolutionSource.FAQ.value,
                needs_escalation=False,
                confidence=Confidence.HIGH,
                matched_faq_id=match.entry.id
            )

        prior = await self.prior_history(session_id, exclude_last_user_turn)

        check = self.detector.check_user_message(message, prior)
        if check.should_escalate:
            return self.handoff_result(check.reason)

        context = prior[-self.context_window:]

        try:
            response_text = await call_provider(
                self.generator,
                self.build_system_instruction(context),
                context,
                message,
                timeout=self.timeout,
                retry_config=self.retry_config,
                circuit_breaker_config=self.circuit_breaker_config,
                session_id=session_id
            )
        except Exception as e:
            logger.error(
                f"Provider '{self.generator.name}' failed for session {session_id}: {e}",
                extra={"session_id": session_id}
            )
            return self.fallback_result()

        needs_escalation = self.detector.needs_escalation(response_text)

        return ResolutionResult(
            response_text=response_text,
            source=self.generator.name,
            needs_escalation=needs_escalation,
            confidence=Confidence.LOW if needs_escalation else Confidence.MEDIUM
        )

    @staticmethod
    def handoff_result(reason: EscalationReason) -> ResolutionResult:
        return ResolutionResult(
            response_text=HANDOFF_RESPONSE,
            source=ResolutionSource.ESCALATION.value,
            needs_escalation=True,
            confidence=Confidence.HIGH,
            escalation_reason=reason
        )

    @staticmethod
    def fallback_result() -> ResolutionResult:
        return ResolutionResult(
            response_text=FALLBACK_RESPONSE,
            source=ResolutionSource.ERROR.value,
            needs_escalation=True,
            confidence=Confidence.LOW
        )

    def summarize_conversation(self, history: Sequence[Message]) -> str:
        return summarize_conversation(history)


__all__ = [
    'ResponseResolver',
    'render_history',
    'summarize_conversation',
    'HANDOFF_RESPONSE',
    'FALLBACK_RESPONSE'
]
