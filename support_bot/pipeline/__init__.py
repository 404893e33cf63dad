"""Pipeline stages for inbound message resolution."""

from .content_filter import is_prohibited
from .rate_limiter import AbuseRateLimiter
from .escalation import EscalationDecider, needs_escalation
from .orchestrator import MessageResolver, build_chat_messages

__all__ = [
    "is_prohibited",
    "AbuseRateLimiter",
    "EscalationDecider",
    "needs_escalation",
    "MessageResolver",
    "build_chat_messages",
]
