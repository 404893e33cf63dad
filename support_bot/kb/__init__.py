"""FAQ matching and conversation context."""

from .faq_matcher import FaqMatcher, match_faq
from .conversation_store import ConversationStore

__all__ = [
    "FaqMatcher",
    "match_faq",
    "ConversationStore",
]
