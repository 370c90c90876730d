"""
Background services.
"""
from .session_sweeper import SessionSweeper

__all__ = ['SessionSweeper']
