"""
Wiring of the database, providers and pipeline components.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import Settings, get_settings
from .db.database import Database
from .db.repository import SupportRepository
from .kb.conversation_store import ConversationStore
from .kb.faq_matcher import FaqMatcher
from .llm_client import LLMProvider, SpeechToTextProvider, get_llm_client, get_speech_client
from .pipeline.escalation import EscalationDecider
from .pipeline.orchestrator import MessageResolver
from .pipeline.rate_limiter import AbuseRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class BotServices:
    """Everything a transport needs to serve users and administrators."""
    settings: Settings
    database: Database
    repository: SupportRepository
    limiter: AbuseRateLimiter
    matcher: FaqMatcher
    context_store: ConversationStore
    escalation: EscalationDecider
    llm: LLMProvider
    speech: SpeechToTextProvider
    resolver: MessageResolver

    async def start(self) -> None:
        """Create missing tables."""
        await self.database.init_models()

    async def aclose(self) -> None:
        """Cancel pending unblocks and release database connections."""
        await self.limiter.aclose()
        await self.database.dispose()


def build_services(
    settings: Optional[Settings] = None,
    llm: Optional[LLMProvider] = None,
    speech: Optional[SpeechToTextProvider] = None,
) -> BotServices:
    """
    Build the service graph from settings.

    Args:
        settings: Runtime settings, defaults to the environment
        llm: Chat-completion provider override
        speech: Speech-to-text provider override

    Returns:
        Wired BotServices; call start() before use
    """
    settings = settings or get_settings()

    database = Database(settings.database_url)
    repository = SupportRepository(database)

    if llm is None:
        llm = get_llm_client(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
        )
    if speech is None:
        speech = get_speech_client(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.transcription_model,
        )

    limiter = AbuseRateLimiter(
        repository,
        short_limit=settings.short_window_limit,
        short_window=settings.short_window_seconds,
        long_limit=settings.long_window_limit,
        long_window=settings.long_window_seconds,
    )
    matcher = FaqMatcher(repository)
    context_store = ConversationStore(repository, limit=settings.context_history_length)
    escalation = EscalationDecider(repository)

    resolver = MessageResolver(
        repository=repository,
        limiter=limiter,
        matcher=matcher,
        context_store=context_store,
        escalation=escalation,
        llm=llm,
        speech=speech,
    )

    logger.info("Services built (mock LLM: %s)", llm.is_mock)

    return BotServices(
        settings=settings,
        database=database,
        repository=repository,
        limiter=limiter,
        matcher=matcher,
        context_store=context_store,
        escalation=escalation,
        llm=llm,
        speech=speech,
        resolver=resolver,
    )
