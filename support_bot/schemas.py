"""
Pydantic schemas for all records, inputs and outputs of the support bot.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class TicketStatus(str, Enum):
    """Ticket lifecycle states. Any state may follow any other."""
    new = "New"
    in_progress = "In Progress"
    resolved = "Resolved"
    closed = "Closed"


class TicketPriority(str, Enum):
    """Ticket priority levels."""
    low = "Low"
    medium = "Medium"
    high = "High"


class Outcome(str, Enum):
    """Terminal outcome of resolving one inbound message."""
    not_understood = "not_understood"    # Voice could not be transcribed
    empty = "empty"                      # Neither text nor voice
    rejected_blocked = "rejected_blocked"
    rejected_policy = "rejected_policy"
    faq_answered = "faq_answered"
    model_answered = "model_answered"
    model_failed = "model_failed"


class UserRecord(BaseModel):
    """A chat user known to the store."""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Internal user id")
    identity: str = Field(..., description="External chat identity")
    username: Optional[str] = Field(default=None, description="Transport username")
    first_name: Optional[str] = Field(default=None, description="First name")
    last_name: Optional[str] = Field(default=None, description="Last name")
    request_count: int = Field(default=0, description="Accepted requests so far")
    is_blocked: bool = Field(default=False, description="Whether the user is blocked")
    created_at: Optional[datetime] = Field(default=None, description="Registration time")

    @property
    def display_name(self) -> str:
        """Best human-readable name for listings."""
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.username or "user"


class MessageRecord(BaseModel):
    """One stored conversation message."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    text: str
    is_from_bot: bool
    created_at: datetime


class TicketRecord(BaseModel):
    """A support ticket opened for a user."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    status: TicketStatus
    priority: TicketPriority
    issue_type: str
    description: str
    created_at: datetime
    updated_at: datetime


class FaqEntry(BaseModel):
    """An administrator-curated question/answer pair."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    question: str
    answer: str
    keywords: Optional[str] = Field(default=None, description="Comma-separated keywords")
    category: Optional[str] = Field(default=None, description="Free-form category")

    @property
    def keyword_list(self) -> list[str]:
        """Trimmed, case-folded, non-empty keywords."""
        if not self.keywords:
            return []
        keywords = [kw.strip().casefold() for kw in self.keywords.split(",")]
        return [kw for kw in keywords if kw]


class FaqDraft(BaseModel):
    """FAQ fields supplied by an administrator before an id exists."""
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    keywords: Optional[str] = None
    category: Optional[str] = None


class ContextTurn(BaseModel):
    """One turn of conversation history fed to the language model."""
    text: str
    is_from_bot: bool


class InboundMessage(BaseModel):
    """A message received from the chat transport."""
    identity: str = Field(..., description="External chat identity of the sender")
    text: Optional[str] = Field(default=None, description="Message text")
    voice: Optional[bytes] = Field(default=None, description="Raw voice audio")
    voice_filename: str = Field(default="voice.oga", description="Filename hint for the audio")
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Resolution(BaseModel):
    """The single reply produced for one inbound message."""
    outcome: Outcome
    reply: str
    ticket_id: Optional[int] = Field(default=None, description="Ticket opened by escalation")
    transcript: Optional[str] = Field(default=None, description="Transcribed voice text")
    markup: bool = Field(default=False, description="Whether the reply may be rendered as Markdown")


class TicketCounts(BaseModel):
    """Ticket totals by status."""
    total: int = 0
    new: int = 0
    in_progress: int = 0
    resolved: int = 0
    closed: int = 0


class SystemStats(BaseModel):
    """Overall usage statistics."""
    users: int = 0
    total_requests: int = 0
    tickets: TicketCounts = Field(default_factory=TicketCounts)
    faqs: int = 0
    messages: int = 0
    last_activity: Optional[datetime] = None


class PeriodStats(BaseModel):
    """Usage statistics for a date range."""
    new_users: int = 0
    messages: int = 0
    tickets: int = 0
    tickets_by_day: dict[str, int] = Field(default_factory=dict)
