"""
Escalation detector.
Keyword scans over generated replies and user messages, plus the
conversation-length/repetition heuristic.

Version: 1.0.0
"""
import logging
from typing import Optional, Sequence, Tuple

from ..config.escalation_settings import EscalationSettings, get_escalation_settings
from ..models.conversation import (
    EscalationCheck,
    EscalationReason,
    Message,
    MessageRole
)

logger = logging.getLogger(__name__)


class EscalationDetector:
    """
    Decide when a conversation should be handed to a human.

    Two signals are checked:
    - Assistant side: the generated reply contains a hand-off or
      uncertainty phrase (the provider is instructed to use one).
    - User side: the user message contains an escalation keyword, or the
      conversation is long and dominated by recent user turns.

    The detector holds only immutable configuration and is safe to share
    between concurrent requests.
    """

    def __init__(self, settings: Optional[EscalationSettings] = None):
        settings = settings or get_escalation_settings()

        self.response_phrases: Tuple[str, ...] = tuple(p.lower() for p in settings.response_phrases)
        self.user_keywords: Tuple[str, ...] = tuple(k.lower() for k in settings.user_keywords)
        self.long_conversation_threshold = settings.long_conversation_threshold
        self.recent_window = settings.recent_window
        self.repeated_user_turns = settings.repeated_user_turns
        self.handoff_phrase = settings.handoff_phrase

        for warning in settings.validate_handoff_contract():
            logger.warning(warning)

        logger.info(
            f"EscalationDetector initialized "
            f"({len(self.response_phrases)} response phrases, "
            f"{len(self.user_keywords)} user keywords)"
        )

    def needs_escalation(self, response_text: str) -> bool:
        """
        Check a generated reply for hand-off or uncertainty phrases.

        Args:
            response_text: Text returned by the provider

        Returns:
            True if any configured phrase occurs (case-insensitive)
        """
        if not response_text:
            return False

        text = response_text.lower()
        return any(phrase in text for phrase in self.response_phrases)

    def find_user_keywords(self, message: str) -> Tuple[str, ...]:
        """Configured keywords present in the message, in list order."""
        text = (message or "").lower()
        return tuple(keyword for keyword in self.user_keywords if keyword in text)

    def check_user_message(
        self,
        message: str,
        history: Sequence[Message]
    ) -> EscalationCheck:
        """
        Apply the user-side escalation heuristic.

        Escalates when the message contains a keyword, or when the history
        is long and at least ``repeated_user_turns`` of the last
        ``recent_window`` entries are user turns. ``history`` must not
        include the message being checked.

        The reason is reported even when the heuristic does not fire, so
        callers can log the weaker repetition signal.

        Args:
            message: Incoming user message
            history: Prior conversation, oldest first

        Returns:
            EscalationCheck with decision and reason code
        """
        history = list(history or [])

        found = self.find_user_keywords(message)
        is_long = len(history) > self.long_conversation_threshold
        is_repetitive = self._has_repeated_user_turns(history)

        should_escalate = bool(found) or (is_long and is_repetitive)

        if found:
            reason = EscalationReason.CUSTOMER_REQUEST
        elif is_long:
            reason = EscalationReason.UNRESOLVED_ISSUE
        elif is_repetitive:
            reason = EscalationReason.REPEATED_QUERIES
        else:
            reason = EscalationReason.NONE

        if should_escalate:
            logger.info(
                f"User-side escalation triggered: {reason.value} "
                f"(keywords={list(found)}, history={len(history)})"
            )

        return EscalationCheck(should_escalate=should_escalate, reason=reason)

    def _has_repeated_user_turns(self, history: Sequence[Message]) -> bool:
        if len(history) <= self.recent_window:
            return False

        recent = history[-self.recent_window:]
        user_turns = sum(1 for m in recent if m.role == MessageRole.USER)
        return user_turns >= self.repeated_user_turns


__all__ = ['EscalationDetector']
