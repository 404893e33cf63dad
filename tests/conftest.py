"""Shared fixtures: temporary SQLite store, fake clock and scripted providers."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from support_bot.db.database import Database
from support_bot.db.repository import SupportRepository
from support_bot.errors import ProviderError
from support_bot.kb.conversation_store import ConversationStore
from support_bot.kb.faq_matcher import FaqMatcher
from support_bot.llm_client import LLMProvider, SpeechToTextProvider
from support_bot.pipeline.escalation import EscalationDecider
from support_bot.pipeline.orchestrator import MessageResolver
from support_bot.pipeline.rate_limiter import AbuseRateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedLLM(LLMProvider):
    """Returns queued answers in order and records every request."""

    def __init__(self, answers=None, default="Please restart the application and try again."):
        self.answers = list(answers or [])
        self.default = default
        self.calls: list[list[dict[str, str]]] = []

    @property
    def is_mock(self) -> bool:
        return True

    async def complete_chat(self, messages):
        self.calls.append(messages)
        answer = self.answers.pop(0) if self.answers else self.default
        if isinstance(answer, Exception):
            raise answer
        return answer


class FailingLLM(ScriptedLLM):
    async def complete_chat(self, messages):
        self.calls.append(messages)
        raise ProviderError("upstream timeout")


class ScriptedSpeech(SpeechToTextProvider):
    def __init__(self, transcript: str = ""):
        self.transcript = transcript
        self.calls = 0

    async def transcribe(self, audio: bytes, filename: str = "voice.oga") -> str:
        self.calls += 1
        return self.transcript


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def database(tmp_path):
    """File-backed SQLite database with all tables created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'support_bot.db'}")
    await db.init_models()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def repository(database):
    return SupportRepository(database)


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def speech():
    return ScriptedSpeech()


@pytest_asyncio.fixture
async def limiter(repository, clock):
    limiter = AbuseRateLimiter(repository, clock=clock)
    yield limiter
    await limiter.aclose()


@pytest.fixture
def resolver(repository, limiter, llm, speech):
    """Resolver wired to the real store and scripted providers."""
    return MessageResolver(
        repository=repository,
        limiter=limiter,
        matcher=FaqMatcher(repository),
        context_store=ConversationStore(repository, limit=5),
        escalation=EscalationDecider(repository),
        llm=llm,
        speech=speech,
    )


@pytest.fixture
def mock_repository():
    """Mock SupportRepository for component tests."""
    repo = MagicMock(spec=SupportRepository)
    repo.get_user_by_identity = AsyncMock(return_value=None)
    repo.get_user = AsyncMock(return_value=None)
    repo.create_user = AsyncMock()
    repo.increment_request_count = AsyncMock()
    repo.set_blocked = AsyncMock(return_value=True)
    repo.append_message = AsyncMock()
    repo.get_recent_messages = AsyncMock(return_value=[])
    repo.create_ticket = AsyncMock()
    repo.list_faqs = AsyncMock(return_value=[])
    return repo
