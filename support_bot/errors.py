"""
Error taxonomy for the message-resolution pipeline.

Rejections are user-visible and never retried. Provider and persistence
errors are logged and turned into a generic apology at the pipeline boundary.
"""


class SupportBotError(Exception):
    """Base class for all pipeline errors."""


class PolicyRejection(SupportBotError):
    """Message text violates the content policy."""


class RateLimitRejection(SupportBotError):
    """Identity is blocked or over its request cap."""


class ProviderError(SupportBotError):
    """The language-model or speech-to-text provider failed."""


class PersistenceError(SupportBotError):
    """A read or write against the relational store failed."""
