"""
Data access for users, messages, tickets and FAQ entries.
Every operation runs in its own session and returns pydantic records.
"""

from __future__ import annotations

import functools
import logging
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError
from ..schemas import (
    FaqDraft, FaqEntry, MessageRecord, TicketPriority, TicketRecord,
    TicketStatus, UserRecord
)
from .database import Database
from .models import Faq, Message, Ticket, User

logger = logging.getLogger(__name__)


def _persistence(operation):
    """Wrap driver errors of a repository coroutine in PersistenceError."""

    @functools.wraps(operation)
    async def wrapper(*args, **kwargs):
        try:
            return await operation(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("Persistence error in %s: %s", operation.__name__, e)
            raise PersistenceError(f"{operation.__name__} failed") from e

    return wrapper


class SupportRepository:
    """Data access helpers for the support bot tables."""

    def __init__(self, database: Database):
        self.database = database

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @_persistence
    async def get_user_by_identity(self, identity: str) -> Optional[UserRecord]:
        async with self.database.session() as session:
            result = await session.execute(select(User).where(User.identity == identity))
            user = result.scalar_one_or_none()
            return UserRecord.model_validate(user) if user else None

    @_persistence
    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        async with self.database.session() as session:
            user = await session.get(User, user_id)
            return UserRecord.model_validate(user) if user else None

    @_persistence
    async def create_user(
        self,
        identity: str,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserRecord:
        async with self.database.session() as session:
            user = User(
                identity=identity,
                username=username,
                first_name=first_name,
                last_name=last_name,
            )
            session.add(user)
            await session.flush()
            await session.refresh(user)
            return UserRecord.model_validate(user)

    @_persistence
    async def increment_request_count(self, user_id: int) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(request_count=User.request_count + 1)
            )

    @_persistence
    async def set_blocked(self, user_id: int, blocked: bool) -> bool:
        """Set the blocked flag. Returns False when the user does not exist."""
        async with self.database.session() as session:
            result = await session.execute(
                update(User).where(User.id == user_id).values(is_blocked=blocked)
            )
            return result.rowcount > 0

    @_persistence
    async def list_users(self) -> list[UserRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(User).order_by(User.created_at.desc(), User.id.desc())
            )
            return [UserRecord.model_validate(user) for user in result.scalars()]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @_persistence
    async def append_message(self, user_id: int, text: str, is_from_bot: bool) -> MessageRecord:
        async with self.database.session() as session:
            message = Message(user_id=user_id, text=text, is_from_bot=is_from_bot)
            session.add(message)
            await session.flush()
            await session.refresh(message)
            return MessageRecord.model_validate(message)

    @_persistence
    async def get_recent_messages(self, user_id: int, limit: int) -> list[MessageRecord]:
        """Most recent messages of a user, newest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(Message)
                .where(Message.user_id == user_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            return [MessageRecord.model_validate(row) for row in result.scalars()]

    @_persistence
    async def clear_history(self, user_id: int) -> int:
        async with self.database.session() as session:
            result = await session.execute(delete(Message).where(Message.user_id == user_id))
            return result.rowcount

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    @_persistence
    async def create_ticket(
        self,
        user_id: int,
        description: str,
        status: TicketStatus = TicketStatus.new,
        priority: TicketPriority = TicketPriority.medium,
        issue_type: str = "Question",
    ) -> TicketRecord:
        async with self.database.session() as session:
            ticket = Ticket(
                user_id=user_id,
                status=status.value,
                priority=priority.value,
                issue_type=issue_type,
                description=description,
            )
            session.add(ticket)
            await session.flush()
            await session.refresh(ticket)
            return TicketRecord.model_validate(ticket)

    @_persistence
    async def get_ticket(self, ticket_id: int) -> Optional[TicketRecord]:
        async with self.database.session() as session:
            ticket = await session.get(Ticket, ticket_id)
            return TicketRecord.model_validate(ticket) if ticket else None

    @_persistence
    async def list_tickets(
        self, status: Optional[TicketStatus] = None
    ) -> list[tuple[TicketRecord, UserRecord]]:
        """All tickets with their owners, newest first."""
        async with self.database.session() as session:
            query = select(Ticket, User).join(User, Ticket.user_id == User.id)
            if status is not None:
                query = query.where(Ticket.status == status.value)
            query = query.order_by(Ticket.created_at.desc(), Ticket.id.desc())
            result = await session.execute(query)
            return [
                (TicketRecord.model_validate(ticket), UserRecord.model_validate(user))
                for ticket, user in result.all()
            ]

    @_persistence
    async def list_user_tickets(self, user_id: int) -> list[TicketRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Ticket)
                .where(Ticket.user_id == user_id)
                .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            )
            return [TicketRecord.model_validate(ticket) for ticket in result.scalars()]

    @_persistence
    async def update_ticket_status(
        self, ticket_id: int, status: TicketStatus
    ) -> Optional[TicketRecord]:
        async with self.database.session() as session:
            ticket = await session.get(Ticket, ticket_id)
            if ticket is None:
                return None
            ticket.status = status.value
            await session.flush()
            await session.refresh(ticket)
            return TicketRecord.model_validate(ticket)

    # ------------------------------------------------------------------
    # FAQ
    # ------------------------------------------------------------------

    @_persistence
    async def list_faqs(self) -> list[FaqEntry]:
        """Full FAQ corpus ordered by id."""
        async with self.database.session() as session:
            result = await session.execute(select(Faq).order_by(Faq.id))
            return [FaqEntry.model_validate(faq) for faq in result.scalars()]

    @_persistence
    async def get_faq(self, faq_id: int) -> Optional[FaqEntry]:
        async with self.database.session() as session:
            faq = await session.get(Faq, faq_id)
            return FaqEntry.model_validate(faq) if faq else None

    @_persistence
    async def add_faq(self, draft: FaqDraft) -> FaqEntry:
        async with self.database.session() as session:
            faq = Faq(**draft.model_dump())
            session.add(faq)
            await session.flush()
            await session.refresh(faq)
            return FaqEntry.model_validate(faq)

    @_persistence
    async def update_faq(self, faq_id: int, draft: FaqDraft) -> Optional[FaqEntry]:
        async with self.database.session() as session:
            faq = await session.get(Faq, faq_id)
            if faq is None:
                return None
            for field, value in draft.model_dump().items():
                setattr(faq, field, value)
            await session.flush()
            await session.refresh(faq)
            return FaqEntry.model_validate(faq)

    @_persistence
    async def delete_faq(self, faq_id: int) -> bool:
        async with self.database.session() as session:
            result = await session.execute(delete(Faq).where(Faq.id == faq_id))
            return result.rowcount > 0
