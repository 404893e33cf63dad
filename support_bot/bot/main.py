"""
Entry point: runs the end-user bot and, when configured, the admin bot
in one process sharing the same services.
"""

import asyncio
import logging
import signal
from typing import Optional

from telegram import Update
from telegram.ext import Application

from ..config import Settings, get_settings
from ..services import BotServices, build_services
from ..utils import setup_logging
from .admin import setup_admin_handlers
from .handlers import setup_handlers

logger = logging.getLogger(__name__)


def create_user_application(token: str, services: BotServices) -> Application:
    """Create the end-user bot application."""
    application = Application.builder().token(token).concurrent_updates(True).build()
    application.bot_data["services"] = services
    setup_handlers(application)
    return application


def create_admin_application(token: str, services: BotServices) -> Application:
    """Create the administrator bot application."""
    application = Application.builder().token(token).build()
    application.bot_data["services"] = services
    setup_admin_handlers(application)
    return application


async def run_bots(settings: Optional[Settings] = None) -> None:
    """Start polling for every configured bot until interrupted."""
    settings = settings or get_settings()
    if not settings.telegram_token:
        raise ValueError("TELEGRAM_TOKEN is not set")

    services = build_services(settings)
    await services.start()

    applications = [create_user_application(settings.telegram_token, services)]
    if settings.admin_bot_token:
        applications.append(create_admin_application(settings.admin_bot_token, services))
    else:
        logger.info("ADMIN_BOT_TOKEN not set. Admin bot disabled.")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows event loops

    try:
        for application in applications:
            await application.initialize()
            await application.start()
            await application.updater.start_polling(
                allowed_updates=Update.ALL_TYPES,
                drop_pending_updates=True,
            )
        logger.info("Bot started successfully (%d application(s))", len(applications))
        await stop_event.wait()
    finally:
        logger.info("Shutting down bots...")
        for application in reversed(applications):
            if application.updater and application.updater.running:
                await application.updater.stop()
            if application.running:
                await application.stop()
            await application.shutdown()
        await services.aclose()


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    asyncio.run(run_bots(settings))


if __name__ == "__main__":
    main()
