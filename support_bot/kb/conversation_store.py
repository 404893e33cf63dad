"""
Conversation context for multi-turn model prompts.
Backed by the message table; returns the most recent turns oldest first.
"""

from typing import Optional

from ..db.repository import SupportRepository
from ..schemas import ContextTurn


class ConversationStore:
    """Reads and clears per-user conversation history."""

    def __init__(self, repository: SupportRepository, limit: int = 5):
        """
        Initialize the conversation store.

        Args:
            repository: Message persistence
            limit: Default number of turns returned by recent_turns
        """
        self.repository = repository
        self.limit = limit

    async def recent_turns(self, user_id: int, limit: Optional[int] = None) -> list[ContextTurn]:
        """
        Get the latest turns of a conversation in chronological order.

        Args:
            user_id: Internal user id
            limit: Maximum number of turns, defaults to the store limit

        Returns:
            Up to `limit` turns, oldest first
        """
        limit = self.limit if limit is None else limit
        if limit <= 0:
            return []

        newest_first = await self.repository.get_recent_messages(user_id, limit)
        return [
            ContextTurn(text=message.text, is_from_bot=message.is_from_bot)
            for message in reversed(newest_first)
        ]

    async def record_exchange(self, user_id: int, question: str, answer: str) -> None:
        """Store a user message and the bot reply, in that order."""
        await self.repository.append_message(user_id, question, is_from_bot=False)
        await self.repository.append_message(user_id, answer, is_from_bot=True)

    async def clear(self, user_id: int) -> int:
        """Delete the user's history. Returns the number of removed messages."""
        return await self.repository.clear_history(user_id)
