"""
Escalation-specific configuration settings.
Keyword lists and conversation heuristics used by the escalation detector.

Version: 1.0.0

The assistant-side phrase list is the textual contract with the system
instruction sent to the provider: the hand-off phrase the model is told to
use must match one of these phrases.
"""
import json
import logging
from functools import lru_cache
from typing import List, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


DEFAULT_RESPONSE_PHRASES = [
    "human agent",
    "not sure",
    "don't know",
    "transfer",
    "unable to"
]

DEFAULT_USER_KEYWORDS = [
    "speak to human",
    "human agent",
    "real person",
    "manager",
    "supervisor",
    "escalate",
    "complaint",
    "legal",
    "lawsuit",
    "frustrated",
    "angry",
    "terrible service",
    "worst",
    "cancel account",
    "delete account",
    "refund immediately"
]


def _parse_keyword_list(v, default: List[str]) -> List[str]:
    """Parse a keyword list from a list, JSON array or comma-separated string."""
    if v is None:
        return list(default)

    if isinstance(v, list):
        return [str(item).strip().lower() for item in v if str(item).strip()]

    if isinstance(v, str):
        if v.startswith('['):
            try:
                return _parse_keyword_list(json.loads(v), default)
            except json.JSONDecodeError:
                pass

        parsed = [item.strip().lower() for item in v.split(',') if item.strip()]
        return parsed if parsed else list(default)

    return v


class EscalationSettings(BaseSettings):
    """
    Escalation detection configuration.

    Environment variables use the ``ESCALATION_`` prefix, e.g.
    ``ESCALATION_USER_KEYWORDS="manager,lawsuit"``.
    """

    model_config = SettingsConfigDict(
        env_prefix="ESCALATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    response_phrases: Union[List[str], str] = Field(
        default_factory=lambda: list(DEFAULT_RESPONSE_PHRASES),
        description="Phrases in a generated reply that signal uncertainty or hand-off"
    )

    user_keywords: Union[List[str], str] = Field(
        default_factory=lambda: list(DEFAULT_USER_KEYWORDS),
        description="Phrases in a user message that request a human or signal a complaint"
    )

    long_conversation_threshold: int = Field(
        default=8,
        ge=1,
        description="History longer than this many messages counts as a long conversation"
    )

    recent_window: int = Field(
        default=4,
        ge=1,
        description="Number of most recent messages inspected for repeated user turns"
    )

    repeated_user_turns: int = Field(
        default=3,
        ge=1,
        description="User turns within the recent window that count as repetition"
    )

    handoff_phrase: str = Field(
        default="I'm not sure. Let me connect you with a human agent.",
        description="Literal reply the provider is instructed to use when not confident"
    )

    @field_validator('response_phrases', mode='before')
    @classmethod
    def parse_response_phrases(cls, v):
        return _parse_keyword_list(v, DEFAULT_RESPONSE_PHRASES)

    @field_validator('user_keywords', mode='before')
    @classmethod
    def parse_user_keywords(cls, v):
        return _parse_keyword_list(v, DEFAULT_USER_KEYWORDS)

    def validate_handoff_contract(self) -> List[str]:
        """
        Check that the hand-off phrase is detectable.

        Returns:
            List of configuration warnings
        """
        warnings = []
        phrase = self.handoff_phrase.lower()
        if not any(p in phrase for p in self.response_phrases):
            warnings.append(
                "Escalation hand-off phrase does not contain any response phrase; "
                "provider hand-offs will not be detected"
            )
        if self.repeated_user_turns > self.recent_window:
            warnings.append("repeated_user_turns exceeds recent_window; repetition never triggers")
        return warnings


@lru_cache()
def get_escalation_settings() -> EscalationSettings:
    """Get cached escalation settings instance."""
    return EscalationSettings()


__all__ = [
    'EscalationSettings',
    'get_escalation_settings',
    'DEFAULT_RESPONSE_PHRASES',
    'DEFAULT_USER_KEYWORDS'
]
