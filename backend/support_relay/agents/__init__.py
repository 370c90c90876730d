"""
Agents module.
Response resolution and per-turn orchestration.
"""
from .resolver import ResponseResolver, summarize_conversation
from .support_agent import CustomerSupportAgent

__all__ = ['ResponseResolver', 'CustomerSupportAgent', 'summarize_conversation']
