"""
Customer Support Chat Relay Backend Application
"""

__version__ = "1.0.0"
__author__ = "Customer Support Relay Team"

# Application metadata
APP_NAME = "Customer Support Chat Relay"
APP_DESCRIPTION = "FAQ-first customer support relay with LLM fallback and human escalation"

__all__ = [
    "APP_NAME",
    "APP_DESCRIPTION",
    "__version__",
]
