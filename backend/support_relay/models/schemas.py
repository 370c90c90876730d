"""
Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .conversation import ActiveSession, Message


# Request Schemas

class ChatRequest(BaseModel):
    """Request to send a message."""
    message: str = Field(..., min_length=1, max_length=4000)
    session_id: str = Field(..., min_length=1, max_length=255)

    @field_validator('message', 'session_id')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Ensure the field is not just whitespace."""
        if not v.strip():
            raise ValueError('Field cannot be empty')
        return v.strip()

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "How do I reset my password?",
                "session_id": "session_1718000000000_k3j9x0a1b"
            }
        }
    )


class EscalateRequest(BaseModel):
    """Request to escalate a session to a human agent."""
    reason: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"reason": "Customer asked for a refund review"}
        }
    )


# Response Schemas

class MessageResponse(BaseModel):
    """A stored conversation turn."""
    role: str
    content: str
    timestamp: datetime

    @classmethod
    def from_message(cls, message: Message) -> 'MessageResponse':
        return cls(role=message.role.value, content=message.content, timestamp=message.timestamp)


class NewSessionResponse(BaseModel):
    """Session creation response."""
    success: bool = True
    session_id: str
    message: str = "New session created"


class ChatResponse(BaseModel):
    """Chat message response."""
    success: bool = True
    response: str
    source: str
    session_id: str
    escalated: bool = False
    needs_escalation: bool = False
    confidence: str
    faq_matched: bool = False
    faq_id: Optional[Any] = None
    escalation_reason: Optional[str] = None
    processing_time: Optional[float] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "response": "Visit Settings > Reset Password.",
                "source": "faq",
                "session_id": "session_1718000000000_k3j9x0a1b",
                "escalated": False,
                "needs_escalation": False,
                "confidence": "high",
                "faq_matched": True,
                "faq_id": 1
            }
        }
    )


class SessionDetail(BaseModel):
    """Session metadata with its conversation."""
    session_id: str
    created_at: datetime
    last_activity: datetime
    escalated: bool
    escalation_reason: Optional[str] = None
    escalation_time: Optional[datetime] = None
    message_count: int = 0
    conversation_history: List[MessageResponse] = []

    @classmethod
    def from_active(cls, active: ActiveSession) -> 'SessionDetail':
        session = active.session
        return cls(
            session_id=session.session_id,
            created_at=session.created_at,
            last_activity=session.last_activity,
            escalated=session.escalated,
            escalation_reason=session.escalation_reason,
            escalation_time=session.escalation_time,
            message_count=active.message_count,
            conversation_history=[MessageResponse.from_message(m) for m in active.history]
        )


class SessionDetailResponse(BaseModel):
    success: bool = True
    session: SessionDetail


class SessionSummary(BaseModel):
    """Session summary for listings."""
    session_id: str
    created_at: datetime
    last_activity: datetime
    escalated: bool
    message_count: int = 0

    @classmethod
    def from_active(cls, active: ActiveSession) -> 'SessionSummary':
        return cls(
            session_id=active.session.session_id,
            created_at=active.session.created_at,
            last_activity=active.session.last_activity,
            escalated=active.session.escalated,
            message_count=active.message_count
        )


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: List[SessionSummary] = []
    total: int = 0


class EscalationStatus(BaseModel):
    session_id: str
    escalated: bool
    escalation_reason: Optional[str] = None
    escalation_time: Optional[datetime] = None


class EscalateResponse(BaseModel):
    """Manual escalation response."""
    success: bool = True
    message: str
    already_escalated: bool = False
    session: EscalationStatus
    summary: Optional[str] = None


class DeleteSessionResponse(BaseModel):
    success: bool = True
    message: str = "Session ended successfully"


class FAQItem(BaseModel):
    """FAQ entry."""
    id: Any
    question: str
    answer: str
    category: str


class FAQSearchItem(FAQItem):
    relevance_score: int


class FAQListResponse(BaseModel):
    success: bool = True
    faqs: List[FAQItem] = []
    categories: List[str] = []
    total: int = 0


class FAQSearchResponse(BaseModel):
    success: bool = True
    query: str
    results: List[FAQSearchItem] = []
    total: int = 0


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    uptime_seconds: Optional[float] = None
    services: Dict[str, str] = {}

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "version": "1.0.0",
                "services": {
                    "history_store": "healthy",
                    "faq_index": "healthy"
                }
            }
        }
    )


class ErrorResponse(BaseModel):
    """Error response."""
    success: bool = False
    error: str
    message: Optional[str] = None
    request_id: Optional[str] = None


__all__ = [
    'ChatRequest',
    'EscalateRequest',
    'MessageResponse',
    'NewSessionResponse',
    'ChatResponse',
    'SessionDetail',
    'SessionDetailResponse',
    'SessionSummary',
    'SessionListResponse',
    'EscalationStatus',
    'EscalateResponse',
    'DeleteSessionResponse',
    'FAQItem',
    'FAQSearchItem',
    'FAQListResponse',
    'FAQSearchResponse',
    'HealthResponse',
    'ErrorResponse'
]
