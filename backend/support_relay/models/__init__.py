"""
Data models.
Conversation types shared by the core and the HTTP schemas built on them.
"""
from .conversation import (
    utcnow,
    MessageRole,
    ResolutionSource,
    Confidence,
    EscalationReason,
    Message,
    Session,
    ActiveSession,
    EscalationOutcome,
    EscalationCheck,
    ResolutionResult,
    TurnResult,
    dump_history,
    load_history
)

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
