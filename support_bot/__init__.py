"""Customer-support chat bot: FAQ answers, model fallback and ticket escalation."""

__version__ = "1.0.0"
