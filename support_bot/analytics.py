"""
Usage statistics for administrators and the HTTP surface.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from .db.database import Database
from .db.models import Faq, Message, Ticket, User
from .errors import PersistenceError
from .schemas import PeriodStats, SystemStats, TicketCounts, TicketStatus

logger = logging.getLogger(__name__)


async def collect_stats(database: Database) -> SystemStats:
    """
    Collect overall usage statistics.

    Args:
        database: Database handle

    Returns:
        SystemStats with user, request, ticket, FAQ and message totals
    """
    try:
        async with database.session() as session:
            users = await session.scalar(select(func.count(User.id)))
            total_requests = await session.scalar(select(func.coalesce(func.sum(User.request_count), 0)))
            faqs = await session.scalar(select(func.count(Faq.id)))
            messages = await session.scalar(select(func.count(Message.id)))
            last_activity = await session.scalar(select(func.max(Message.created_at)))

            result = await session.execute(
                select(Ticket.status, func.count(Ticket.id)).group_by(Ticket.status)
            )
            by_status = {status: count for status, count in result.all()}
    except SQLAlchemyError as e:
        logger.error("Error collecting statistics: %s", e)
        raise PersistenceError("collect_stats failed") from e

    tickets = TicketCounts(
        total=sum(by_status.values()),
        new=by_status.get(TicketStatus.new.value, 0),
        in_progress=by_status.get(TicketStatus.in_progress.value, 0),
        resolved=by_status.get(TicketStatus.resolved.value, 0),
        closed=by_status.get(TicketStatus.closed.value, 0),
    )

    return SystemStats(
        users=users or 0,
        total_requests=total_requests or 0,
        tickets=tickets,
        faqs=faqs or 0,
        messages=messages or 0,
        last_activity=last_activity,
    )


async def collect_period_stats(database: Database, start: date, end: date) -> PeriodStats:
    """
    Collect statistics for an inclusive date range.

    Args:
        database: Database handle
        start: First day of the range
        end: Last day of the range

    Returns:
        PeriodStats with new users, messages, tickets and tickets per day
    """
    if end < start:
        start, end = end, start

    range_start = datetime.combine(start, time.min)
    range_end = datetime.combine(end, time.max)

    try:
        async with database.session() as session:
            new_users = await session.scalar(
                select(func.count(User.id)).where(User.created_at.between(range_start, range_end))
            )
            messages = await session.scalar(
                select(func.count(Message.id)).where(Message.created_at.between(range_start, range_end))
            )
            tickets = await session.scalar(
                select(func.count(Ticket.id)).where(Ticket.created_at.between(range_start, range_end))
            )

            day = func.date(Ticket.created_at)
            result = await session.execute(
                select(day, func.count(Ticket.id))
                .where(Ticket.created_at.between(range_start, range_end))
                .group_by(day)
                .order_by(day)
            )
            tickets_by_day = {str(ticket_day): count for ticket_day, count in result.all()}
    except SQLAlchemyError as e:
        logger.error("Error collecting period statistics: %s", e)
        raise PersistenceError("collect_period_stats failed") from e

    return PeriodStats(
        new_users=new_users or 0,
        messages=messages or 0,
        tickets=tickets or 0,
        tickets_by_day=tickets_by_day,
    )
