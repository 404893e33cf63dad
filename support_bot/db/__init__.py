"""Relational store: table definitions, engine handle and repository."""

from .database import Database
from .models import Base, Faq, Message, Ticket, User
from .repository import SupportRepository

__all__ = [
    "Database",
    "Base",
    "Faq",
    "Message",
    "Ticket",
    "User",
    "SupportRepository",
]
