"""
Administrator Telegram bot: FAQ curation, ticket handling, user blocking
and usage statistics. Restricted to the configured admin ids.
"""

import functools
import logging
from datetime import date, datetime
from typing import Optional

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..analytics import collect_period_stats, collect_stats
from ..errors import PersistenceError
from ..schemas import FaqDraft, PeriodStats, SystemStats, TicketStatus
from ..services import BotServices
from ..utils import format_timestamp, truncate_text
from .state import AdminSessionStore, AdminStep

logger = logging.getLogger(__name__)


TICKETS_SHOWN = 10
USERS_SHOWN = 15

admin_help_text = (
    "Welcome to the administrator panel!\n\n"
    "Available commands:\n"
    "/faq - manage the knowledge base\n"
    "/tickets - view and manage tickets\n"
    "/users - manage users\n"
    "/stats - usage statistics (optionally /stats YYYY-MM-DD YYYY-MM-DD)"
)

addfaq_prompt = (
    "To add an FAQ entry, send a message in this format:\n\n"
    "Question: [question text]\n"
    "Answer: [answer text]\n"
    "Category: [category]\n"
    "Keywords: [word1, word2, ...]"
)

# Line prefixes accepted in /addfaq messages
faq_field_labels = {
    "question": ("question:", "вопрос:"),
    "answer": ("answer:", "ответ:"),
    "category": ("category:", "категория:"),
    "keywords": ("keywords:", "ключевые слова:"),
}


def get_services(context: ContextTypes.DEFAULT_TYPE) -> BotServices:
    return context.application.bot_data["services"]


def get_sessions(context: ContextTypes.DEFAULT_TYPE) -> AdminSessionStore:
    return context.application.bot_data["admin_sessions"]


def is_admin(services: BotServices, user_id: Optional[int]) -> bool:
    return user_id is not None and user_id in services.settings.admin_ids


def admin_command(handler):
    """Restrict a command to administrators and end any pending admin dialog."""

    @functools.wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        services = get_services(context)
        user = update.effective_user
        if not is_admin(services, user.id if user else None):
            logger.warning("Rejected admin command from non-admin %s", user.id if user else None)
            await update.effective_message.reply_text("You do not have access to the administrator panel.")
            return
        get_sessions(context).clear(user.id)
        await handler(update, context)

    return wrapper


def parse_id_argument(context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    """First command argument as a positive integer id."""
    if not context.args:
        return None
    try:
        value = int(context.args[0])
    except ValueError:
        return None
    return value if value > 0 else None


def parse_faq_text(text: str) -> Optional[FaqDraft]:
    """
    Parse a labelled FAQ message.

    Args:
        text: Message with "Question:", "Answer:", "Category:" and "Keywords:" lines

    Returns:
        FaqDraft, or None if the question or answer is missing
    """
    fields: dict[str, str] = {}
    for line in (text or "").splitlines():
        stripped = line.strip()
        folded = stripped.casefold()
        for field, labels in faq_field_labels.items():
            label = next((label for label in labels if folded.startswith(label)), None)
            if label is not None:
                fields[field] = stripped[len(label):].strip()
                break

    if not fields.get("question") or not fields.get("answer"):
        return None

    return FaqDraft(
        question=fields["question"],
        answer=fields["answer"],
        category=fields.get("category") or None,
        keywords=fields.get("keywords") or None,
    )


def format_stats(stats: SystemStats) -> str:
    lines = [
        "📊 System statistics 📊",
        "",
        f"👥 Users: {stats.users}",
        f"💬 Requests: {stats.total_requests}",
        f"🎫 Tickets: {stats.tickets.total}",
        f"📝 FAQ entries: {stats.faqs}",
        f"✉️ Messages: {stats.messages}",
        "",
        "🎫 Tickets by status:",
        f"New: {stats.tickets.new}",
        f"In progress: {stats.tickets.in_progress}",
        f"Resolved: {stats.tickets.resolved}",
        f"Closed: {stats.tickets.closed}",
        "",
        f"Last activity: {format_timestamp(stats.last_activity) if stats.last_activity else 'none'}",
        f"📆 Now: {format_timestamp()}",
    ]
    return "\n".join(lines)


def format_period_stats(start: date, end: date, stats: PeriodStats) -> str:
    lines = [
        f"📊 Statistics for {start.isoformat()} - {end.isoformat()}",
        "",
        f"New users: {stats.new_users}",
        f"Messages: {stats.messages}",
        f"Tickets: {stats.tickets}",
    ]
    if stats.tickets_by_day:
        lines.append("")
        lines.append("Tickets by day:")
        lines.extend(f"{day}: {count}" for day, count in stats.tickets_by_day.items())
    return "\n".join(lines)


# ----------------------------------------------------------------------
# General
# ----------------------------------------------------------------------

@admin_command
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.effective_message.reply_text(admin_help_text)


# ----------------------------------------------------------------------
# FAQ
# ----------------------------------------------------------------------

@admin_command
async def faq_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    faqs = await get_services(context).repository.list_faqs()
    if not faqs:
        await update.effective_message.reply_text(
            "The knowledge base is empty. Add entries with /addfaq."
        )
        return

    lines = ["Knowledge base FAQ:", ""]
    lines.extend(f"{index}. {faq.question} [ID: {faq.id}]" for index, faq in enumerate(faqs, start=1))
    lines.append("")
    lines.append("Use /viewfaq [ID] to see an answer")
    lines.append("Use /addfaq to add a new entry")
    lines.append("Use /delfaq [ID] to delete an entry")
    await update.effective_message.reply_text("\n".join(lines))


@admin_command
async def viewfaq_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    faq_id = parse_id_argument(context)
    if faq_id is None:
        await update.effective_message.reply_text("Usage: /viewfaq [ID]")
        return

    faq = await get_services(context).repository.get_faq(faq_id)
    if faq is None:
        await update.effective_message.reply_text(f"FAQ with ID {faq_id} not found.")
        return

    await update.effective_message.reply_text(
        f"FAQ #{faq.id}\n\n"
        f"Question: {faq.question}\n\n"
        f"Answer: {faq.answer}\n\n"
        f"Category: {faq.category or 'not set'}\n"
        f"Keywords: {faq.keywords or 'not set'}"
    )


@admin_command
async def addfaq_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    get_sessions(context).begin(update.effective_user.id, AdminStep.awaiting_faq_text)
    await update.effective_message.reply_text(addfaq_prompt)


@admin_command
async def delfaq_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    faq_id = parse_id_argument(context)
    if faq_id is None:
        await update.effective_message.reply_text("Usage: /delfaq [ID]")
        return

    try:
        deleted = await get_services(context).repository.delete_faq(faq_id)
    except PersistenceError as e:
        logger.error("Error deleting FAQ %s: %s", faq_id, e)
        await update.effective_message.reply_text("Error while deleting the FAQ entry.")
        return

    if deleted:
        await update.effective_message.reply_text(f"FAQ with ID {faq_id} deleted.")
    else:
        await update.effective_message.reply_text(f"FAQ with ID {faq_id} not found.")


async def admin_text_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Continue a pending admin dialog with a plain text message."""
    services = get_services(context)
    sessions = get_sessions(context)
    user = update.effective_user
    message = update.effective_message
    if user is None or message is None or not is_admin(services, user.id):
        return

    if sessions.current(user.id) != AdminStep.awaiting_faq_text:
        return

    draft = parse_faq_text(message.text)
    if draft is None:
        await message.reply_text("Please provide at least a question and an answer. Try again.")
        return

    try:
        faq = await services.repository.add_faq(draft)
    except PersistenceError as e:
        logger.error("Error adding FAQ: %s", e)
        sessions.clear(user.id)
        await message.reply_text("Error while adding the FAQ entry. Use /addfaq to try again.")
        return

    sessions.clear(user.id)
    logger.info("Admin %s added FAQ #%s", user.id, faq.id)
    await message.reply_text(
        f"FAQ entry added! ID: {faq.id}\n\n"
        f"Question: {faq.question}\n\n"
        f"Answer: {faq.answer}\n\n"
        f"Category: {faq.category or 'not set'}\n"
        f"Keywords: {faq.keywords or 'not set'}"
    )


# ----------------------------------------------------------------------
# Tickets
# ----------------------------------------------------------------------

@admin_command
async def tickets_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    rows = await get_services(context).repository.list_tickets()
    if not rows:
        await update.effective_message.reply_text("There are no tickets.")
        return

    lines = ["Tickets:", ""]
    for ticket, owner in rows[:TICKETS_SHOWN]:
        lines.append(f"#{ticket.id} from {owner.first_name or owner.username or 'user'}")
        lines.append(f"Status: {ticket.status.value}, Priority: {ticket.priority.value}")
        lines.append(f"Type: {ticket.issue_type}")
        lines.append(f"Description: {truncate_text(ticket.description, 50)}")
        lines.append("")

    if len(rows) > TICKETS_SHOWN:
        lines.append(f"Showing {TICKETS_SHOWN} of {len(rows)} tickets. Use /ticket [ID] for details.")
    else:
        lines.append("Use /ticket [ID] for details.")
    await update.effective_message.reply_text("\n".join(lines))


@admin_command
async def ticket_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    ticket_id = parse_id_argument(context)
    if ticket_id is None:
        await update.effective_message.reply_text("Usage: /ticket [ID]")
        return

    ticket = await get_services(context).repository.get_ticket(ticket_id)
    if ticket is None:
        await update.effective_message.reply_text(f"Ticket with ID {ticket_id} not found.")
        return

    await update.effective_message.reply_text(
        f"Ticket #{ticket.id}\n\n"
        f"Status: {ticket.status.value}\n"
        f"Priority: {ticket.priority.value}\n"
        f"Type: {ticket.issue_type}\n\n"
        f"Description:\n{ticket.description}\n\n"
        f"Created: {format_timestamp(ticket.created_at)}\n"
        f"Updated: {format_timestamp(ticket.updated_at)}\n\n"
        "To change the status use:\n"
        f"/ticket_inprogress {ticket.id} - take into work\n"
        f"/ticket_solved {ticket.id} - mark as resolved\n"
        f"/ticket_closed {ticket.id} - close the ticket"
    )


async def _set_ticket_status(update: Update, context: ContextTypes.DEFAULT_TYPE, status: TicketStatus) -> None:
    ticket_id = parse_id_argument(context)
    if ticket_id is None:
        await update.effective_message.reply_text("Please specify a ticket ID.")
        return

    try:
        ticket = await get_services(context).repository.update_ticket_status(ticket_id, status)
    except PersistenceError as e:
        logger.error("Error updating ticket %s status: %s", ticket_id, e)
        await update.effective_message.reply_text("Error while updating the ticket status.")
        return

    if ticket is None:
        await update.effective_message.reply_text(f"Ticket with ID {ticket_id} not found.")
        return

    logger.info("Admin %s set ticket #%s to %s", update.effective_user.id, ticket_id, status.value)
    await update.effective_message.reply_text(f"Ticket #{ticket_id} updated. New status: {status.value}")


@admin_command
async def ticket_inprogress_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_ticket_status(update, context, TicketStatus.in_progress)


@admin_command
async def ticket_solved_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_ticket_status(update, context, TicketStatus.resolved)


@admin_command
async def ticket_closed_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_ticket_status(update, context, TicketStatus.closed)


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------

@admin_command
async def users_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    users = await get_services(context).repository.list_users()
    if not users:
        await update.effective_message.reply_text("There are no registered users.")
        return

    lines = ["Users:", ""]
    for user in users[:USERS_SHOWN]:
        handle = f" (@{user.username})" if user.username else ""
        lines.append(f"ID: {user.id} | Telegram: {user.identity} | {user.display_name}{handle}")
        lines.append(f"Requests: {user.request_count} | Blocked: {'yes' if user.is_blocked else 'no'}")
        lines.append("")

    if len(users) > USERS_SHOWN:
        lines.append(f"Showing {USERS_SHOWN} of {len(users)} users.")
    lines.append("Commands:")
    lines.append("/block [ID] - block a user")
    lines.append("/unblock [ID] - unblock a user")
    await update.effective_message.reply_text("\n".join(lines))


@admin_command
async def block_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = get_services(context)
    user_id = parse_id_argument(context)
    if user_id is None:
        await update.effective_message.reply_text("Usage: /block [ID]")
        return

    if not await services.repository.set_blocked(user_id, True):
        await update.effective_message.reply_text(f"User with ID {user_id} not found.")
        return

    # A manual block is permanent until /unblock
    services.limiter.cancel_unblock(user_id)
    logger.info("Admin %s blocked user %s", update.effective_user.id, user_id)
    await update.effective_message.reply_text(f"User with ID {user_id} blocked.")


@admin_command
async def unblock_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = get_services(context)
    user_id = parse_id_argument(context)
    if user_id is None:
        await update.effective_message.reply_text("Usage: /unblock [ID]")
        return

    user = await services.repository.get_user(user_id)
    if user is None:
        await update.effective_message.reply_text(f"User with ID {user_id} not found.")
        return

    await services.repository.set_blocked(user_id, False)
    services.limiter.cancel_unblock(user_id)
    services.limiter.reset(user.identity)
    logger.info("Admin %s unblocked user %s", update.effective_user.id, user_id)
    await update.effective_message.reply_text(f"User with ID {user_id} unblocked.")


# ----------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------

def _parse_period(args: list[str]) -> Optional[tuple[date, date]]:
    if len(args) != 2:
        return None
    try:
        start = datetime.strptime(args[0], "%Y-%m-%d").date()
        end = datetime.strptime(args[1], "%Y-%m-%d").date()
    except ValueError:
        return None
    return (start, end) if start <= end else (end, start)


@admin_command
async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = get_services(context)

    if context.args:
        period = _parse_period(context.args)
        if period is None:
            await update.effective_message.reply_text("Usage: /stats [YYYY-MM-DD YYYY-MM-DD]")
            return
        start, end = period
        stats = await collect_period_stats(services.database, start, end)
        await update.effective_message.reply_text(format_period_stats(start, end, stats))
        return

    stats = await collect_stats(services.database)
    await update.effective_message.reply_text(format_stats(stats))


@admin_command
async def unknown_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.effective_message.reply_text("Unknown command. Use /start to see the available commands.")


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Admin bot error: %s", context.error, exc_info=context.error)

    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text("An error occurred while executing the command.")
        except Exception as e:
            logger.error("Failed to notify admin about an error: %s", e)


def setup_admin_handlers(application: Application) -> None:
    """Register the admin commands and the dialog text handler."""
    application.bot_data.setdefault("admin_sessions", AdminSessionStore())

    commands = {
        "start": start_command,
        "faq": faq_command,
        "viewfaq": viewfaq_command,
        "addfaq": addfaq_command,
        "delfaq": delfaq_command,
        "tickets": tickets_command,
        "ticket": ticket_command,
        "ticket_inprogress": ticket_inprogress_command,
        "ticket_solved": ticket_solved_command,
        "ticket_closed": ticket_closed_command,
        "users": users_command,
        "block": block_command,
        "unblock": unblock_command,
        "stats": stats_command,
    }
    for name, callback in commands.items():
        application.add_handler(CommandHandler(name, callback))

    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, admin_text_handler))
    application.add_handler(MessageHandler(filters.COMMAND, unknown_command))
    application.add_error_handler(error_handler)

    logger.info("Admin bot handlers registered")
