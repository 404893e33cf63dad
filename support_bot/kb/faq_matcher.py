"""
FAQ matching against the administrator-curated corpus.

Three tiers are tried in order and the first hit wins:
exact question match, question contained in the query, keyword in the query.
"""

import logging
from typing import Optional, Sequence

from ..db.repository import SupportRepository
from ..schemas import FaqEntry

logger = logging.getLogger(__name__)


def _fold(text: Optional[str]) -> str:
    return (text or "").strip().casefold()


def match_faq(entries: Sequence[FaqEntry], query: str) -> Optional[FaqEntry]:
    """
    Find the FAQ entry answering a query.

    Args:
        entries: FAQ corpus in a stable order (by id)
        query: User question

    Returns:
        The matching entry, or None
    """
    if not entries:
        return None

    folded_query = _fold(query)
    if not folded_query:
        return None

    # Tier 1: exact
    for entry in entries:
        if _fold(entry.question) == folded_query:
            return entry

    # Tier 2: containment
    for entry in entries:
        question = _fold(entry.question)
        if question and question in folded_query:
            return entry

    # Tier 3: keywords
    for entry in entries:
        if any(keyword in folded_query for keyword in entry.keyword_list):
            return entry

    return None


class FaqMatcher:
    """Looks up FAQ answers, reading the corpus fresh on every call."""

    def __init__(self, repository: SupportRepository):
        self.repository = repository

    async def find_answer(self, query: str) -> Optional[str]:
        entries = await self.repository.list_faqs()
        entry = match_faq(entries, query)
        if entry is None:
            return None
        logger.debug("FAQ #%s matched query", entry.id)
        return entry.answer
