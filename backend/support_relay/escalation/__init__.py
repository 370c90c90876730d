"""
Escalation package.
Detects when a conversation should be handed to a human agent.
"""
from .detector import EscalationDetector

__all__ = ['EscalationDetector']
