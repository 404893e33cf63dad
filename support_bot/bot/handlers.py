"""
End-user Telegram bot: commands and free-form message handling.
"""

import logging

from telegram import Message, Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..schemas import InboundMessage, Resolution
from ..services import BotServices
from ..utils import format_timestamp, truncate_text

logger = logging.getLogger(__name__)


welcome_text = (
    "Welcome to the technical support bot! 👋\n\n"
    "I can help you with all kinds of questions and problems. "
    "Just describe what you need and I will do my best to help.\n\n"
    "You can send both text and voice messages.\n\n"
    "Use /help to see the available commands."
)

help_text = (
    "How to use this bot:\n\n"
    "• Ask a question in your own words\n"
    "• Complex requests are turned into a support ticket\n"
    "• Use /status to check the status of your requests\n\n"
    "Available commands:\n"
    "/start - Start working with the bot\n"
    "/help - Show this help\n"
    "/status - Check the status of your requests\n"
    "/clear - Clear the conversation history"
)

not_registered_text = "You are not registered in the system yet."
generic_error_text = (
    "Sorry, an error occurred while processing your request. "
    "Please try again later or contact us another way."
)


def get_services(context: ContextTypes.DEFAULT_TYPE) -> BotServices:
    return context.application.bot_data["services"]


async def send_reply(message: Message, text: str, markup: bool = False) -> None:
    """Reply with Markdown when allowed, falling back to plain text if Telegram rejects it."""
    if markup:
        try:
            await message.reply_text(text, parse_mode=ParseMode.MARKDOWN)
            return
        except BadRequest as e:
            logger.warning("Markdown rendering rejected, sending plain text: %s", e)
    await message.reply_text(text)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.effective_message.reply_text(welcome_text)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.effective_message.reply_text(help_text)


def format_user_tickets(tickets) -> str:
    """Render a user's tickets for /status."""
    lines = ["Your support requests:", ""]
    for index, ticket in enumerate(tickets, start=1):
        lines.append(f"{index}. #{ticket.id} - {truncate_text(ticket.description, 30)}")
        lines.append(f"   Status: {ticket.status.value}, Priority: {ticket.priority.value}")
        lines.append(f"   Created: {format_timestamp(ticket.created_at)}")
        lines.append("")
    return "\n".join(lines).rstrip()


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """List the caller's tickets."""
    services = get_services(context)
    message = update.effective_message
    identity = str(update.effective_user.id)

    try:
        user = await services.repository.get_user_by_identity(identity)
        if user is None:
            await message.reply_text(not_registered_text)
            return

        tickets = await services.repository.list_user_tickets(user.id)
    except Exception as e:
        logger.error("Error processing /status for %s: %s", identity, e)
        await message.reply_text("An error occurred while fetching your requests. Please try again later.")
        return

    if not tickets:
        await message.reply_text("You have no active support requests.")
        return

    await message.reply_text(format_user_tickets(tickets))


async def clear_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Delete the caller's conversation history."""
    services = get_services(context)
    message = update.effective_message
    identity = str(update.effective_user.id)

    try:
        user = await services.repository.get_user_by_identity(identity)
        if user is None:
            await message.reply_text(not_registered_text)
            return

        await services.context_store.clear(user.id)
    except Exception as e:
        logger.error("Error processing /clear for %s: %s", identity, e)
        await message.reply_text("An error occurred while clearing the history. Please try again later.")
        return

    await message.reply_text("Conversation history cleared. We are starting from a clean slate.")


async def message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Resolve a free-form text or voice message."""
    services = get_services(context)
    message = update.effective_message
    sender = update.effective_user
    if message is None or sender is None:
        return

    inbound = InboundMessage(
        identity=str(sender.id),
        text=message.text,
        username=sender.username,
        first_name=sender.first_name,
        last_name=sender.last_name,
    )

    if message.voice:
        await message.reply_text("Processing your voice message...")
        voice_file = await message.voice.get_file()
        audio = await voice_file.download_as_bytearray()
        inbound.voice = bytes(audio)
        inbound.voice_filename = f"{message.voice.file_unique_id}.oga"

    await context.bot.send_chat_action(chat_id=message.chat_id, action=ChatAction.TYPING)

    resolution: Resolution = await services.resolver.resolve(inbound)

    if resolution.transcript:
        await message.reply_text(f'Your message: "{resolution.transcript}"')

    await send_reply(message, resolution.reply, markup=resolution.markup)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log handler errors and tell the user something went wrong."""
    logger.error("Bot error: %s", context.error, exc_info=context.error)

    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text(generic_error_text)
        except Exception as e:
            logger.error("Failed to notify user about an error: %s", e)


def setup_handlers(application: Application) -> None:
    """Register the end-user commands and the message handler."""
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("clear", clear_command))
    application.add_handler(
        MessageHandler((filters.TEXT & ~filters.COMMAND) | filters.VOICE, message_handler)
    )
    application.add_error_handler(error_handler)

    logger.info("User bot handlers registered")
