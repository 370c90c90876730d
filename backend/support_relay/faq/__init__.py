"""
FAQ package.
Static question/answer data and keyword-scored lookup.
"""
from .faq_index import (
    FAQIndex,
    FAQEntry,
    FAQMatch,
    FAQDataError,
    DEFAULT_MATCH_THRESHOLD
)

__all__ = [
    'FAQIndex',
    'FAQEntry',
    'FAQMatch',
    'FAQDataError',
    'DEFAULT_MATCH_THRESHOLD'
]
