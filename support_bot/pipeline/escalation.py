"""
Escalation of uncertain model answers to support tickets.
"""

import logging
from typing import Iterable, Optional

from ..db.repository import SupportRepository
from ..errors import PersistenceError
from ..schemas import TicketPriority, TicketStatus

logger = logging.getLogger(__name__)


# Phrases the model is instructed to use when it cannot answer confidently
uncertainty_markers = [
    "requires a specialist",
    "i don't know",
    "cannot provide an accurate answer",
    "требует участия специалиста",
    "не знаю",
    "не могу предоставить точную информацию",
]

ticket_notice_template = (
    "\n\nYour request has been registered as ticket #{ticket_id}. "
    "A specialist will contact you shortly."
)


def needs_escalation(answer: str, markers: Iterable[str] = uncertainty_markers) -> bool:
    """Check whether an answer contains any uncertainty marker (case-insensitive)."""
    folded = (answer or "").casefold()
    # Models often emit typographic apostrophes
    folded = folded.replace("’", "'")
    return any(marker.casefold() in folded for marker in markers)


class EscalationDecider:
    """Opens a ticket when a generated answer signals low confidence."""

    def __init__(
        self,
        repository: SupportRepository,
        markers: Optional[Iterable[str]] = None,
        issue_type: str = "Question",
        priority: TicketPriority = TicketPriority.medium,
    ):
        self.repository = repository
        self.markers = list(markers) if markers is not None else list(uncertainty_markers)
        self.issue_type = issue_type
        self.priority = priority

    async def review(self, user_id: int, question: str, answer: str) -> tuple[str, Optional[int]]:
        """
        Escalate an answer if needed.

        Args:
            user_id: Internal id of the asking user
            question: Original question, stored as the ticket description
            answer: Generated answer

        Returns:
            Tuple of (reply text, ticket id or None)
        """
        if not needs_escalation(answer, self.markers):
            return answer, None

        try:
            ticket = await self.repository.create_ticket(
                user_id=user_id,
                description=question,
                status=TicketStatus.new,
                priority=self.priority,
                issue_type=self.issue_type,
            )
        except PersistenceError as e:
            logger.error("Failed to create escalation ticket for user %s: %s", user_id, e)
            return answer, None

        logger.info("Escalated question of user %s to ticket #%s", user_id, ticket.id)
        return answer + ticket_notice_template.format(ticket_id=ticket.id), ticket.id
