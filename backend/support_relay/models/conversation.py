"""
Conversation data models.
Messages, session metadata and resolution results shared by the core.

Version: 1.0.0
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MessageRole(str, Enum):
    """Message role enumeration."""
    USER = "user"
    ASSISTANT = "assistant"


class ResolutionSource(str, Enum):
    """Where a resolution came from (provider names are used verbatim)."""
    FAQ = "faq"
    ESCALATION = "escalation"
    ERROR = "error"


class Confidence(str, Enum):
    """Resolution confidence."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EscalationReason(str, Enum):
    """Reason codes for escalations triggered before the provider call."""
    CUSTOMER_REQUEST = "customer_request"
    UNRESOLVED_ISSUE = "unresolved_issue"
    REPEATED_QUERIES = "repeated_queries"
    NONE = "none"


class Message(BaseModel):
    """
    A single conversation turn.

    Immutable once created; serialized as ``{role, content, timestamp}``
    with an ISO-8601 timestamp.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator('timestamp')
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return _ensure_aware(v)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z")
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        data = dict(data)
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            try:
                data["timestamp"] = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
            except ValueError:
                logger.warning(f"Invalid message timestamp: {timestamp}")
                data.pop("timestamp")
        elif timestamp is None:
            data.pop("timestamp", None)
        return cls(**data)

    def to_provider_turn(self) -> Dict[str, str]:
        """Role/content pair as sent to a text-generation provider."""
        return {"role": self.role.value, "content": self.content}


def dump_history(messages: List[Message]) -> str:
    """Serialize a message list to the persisted JSON string."""
    return json.dumps([m.to_dict() for m in messages])


def load_history(raw: Optional[str]) -> List[Message]:
    """
    Deserialize the persisted JSON string.

    Malformed payloads and entries are dropped rather than raised; a broken
    record reads as an empty conversation.
    """
    if not raw:
        return []

    try:
        items = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error(f"Corrupt history payload: {e}")
        return []

    if not isinstance(items, list):
        logger.error(f"History payload is not a list: {type(items).__name__}")
        return []

    messages = []
    for item in items:
        try:
            messages.append(Message.from_dict(item))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed history entry: {e}")
    return messages


class Session(BaseModel):
    """Session metadata held by the session registry."""

    model_config = ConfigDict(validate_assignment=True)

    session_id: str = Field(..., min_length=1, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    escalated: bool = False
    escalation_reason: Optional[str] = None
    escalation_time: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('created_at', 'last_activity', 'escalation_time')
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        return _ensure_aware(v)

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_activity = now or utcnow()

    def mark_escalated(self, reason: str, now: Optional[datetime] = None) -> None:
        self.escalated = True
        self.escalation_reason = reason
        self.escalation_time = now or utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ActiveSession(BaseModel):
    """Registry entry enriched with its current history."""

    session: Session
    history: List[Message] = Field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.history)


@dataclass
class EscalationOutcome:
    """Result of escalating a session."""
    session: Session
    already_escalated: bool = False


@dataclass
class EscalationCheck:
    """Outcome of the user-side escalation heuristic."""
    should_escalate: bool
    reason: EscalationReason = EscalationReason.NONE


@dataclass
class ResolutionResult:
    """Outcome of resolving one user message. Not persisted."""
    response_text: str
    source: str
    needs_escalation: bool
    confidence: Confidence
    matched_faq_id: Optional[Any] = None
    escalation_reason: Optional[EscalationReason] = None

    @property
    def faq_matched(self) -> bool:
        return self.source == ResolutionSource.FAQ.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response_text,
            "source": self.source,
            "needs_escalation": self.needs_escalation,
            "confidence": self.confidence.value,
            "matched_faq_id": self.matched_faq_id,
            "escalation_reason": self.escalation_reason.value if self.escalation_reason else None
        }


@dataclass
class TurnResult:
    """A resolved and recorded turn, as returned to the HTTP layer."""
    session_id: str
    resolution: ResolutionResult
    escalated: bool = False
    history_length: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    'utcnow',
    'MessageRole',
    'ResolutionSource',
    'Confidence',
    'EscalationReason',
    'Message',
    'Session',
    'ActiveSession',
    'EscalationOutcome',
    'EscalationCheck',
    'ResolutionResult',
    'TurnResult',
    'dump_history',
    'load_history'
]
