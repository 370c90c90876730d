"""
API route modules.
"""
from . import chat, sessions, faqs, health

__all__ = ['chat', 'sessions', 'faqs', 'health']
