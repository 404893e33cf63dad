"""Telegram transports: end-user bot and administrator bot."""

from .main import create_admin_application, create_user_application, run_bots
from .state import AdminSessionStore, AdminStep

__all__ = [
    "create_user_application",
    "create_admin_application",
    "run_bots",
    "AdminSessionStore",
    "AdminStep",
]
