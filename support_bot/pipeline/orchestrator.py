"""
Message resolution: turns one inbound chat message into exactly one reply.

Order of stages:
transcription -> registration -> rate limit -> request counter ->
content policy -> FAQ -> context + language model + escalation.
"""

import logging
from typing import Optional

from ..db.repository import SupportRepository
from ..errors import PersistenceError, PolicyRejection, ProviderError, RateLimitRejection
from ..kb.conversation_store import ConversationStore
from ..kb.faq_matcher import FaqMatcher
from ..llm_client import LLMProvider, SpeechToTextProvider
from ..schemas import ContextTurn, InboundMessage, Outcome, Resolution, UserRecord
from .content_filter import is_prohibited
from .escalation import EscalationDecider
from .rate_limiter import AbuseRateLimiter

logger = logging.getLogger(__name__)


system_prompt = """You are the technical support bot of our company. Your job is to help users solve their problems.

Answer briefly and to the point. If you do not know the exact answer, say that "this question requires a specialist from our technical support team".
Never make up information you do not have. The knowledge base covers these categories:
1. General questions about the company
2. Technical problems with our software
3. Accounts and security
4. Plans and billing
5. Hardware setup"""

rate_limited_reply = "You are sending too many messages. Please wait a little."
policy_reply = "Your message contains inappropriate content. Please follow the rules of communication."
technical_error_reply = (
    "Sorry, a technical error occurred while processing your request. "
    "Please try asking again later."
)
not_understood_reply = (
    "I could not recognize the voice message. "
    "Please try again or send a text message."
)
empty_reply = "Please send a text or voice message."


def build_chat_messages(turns: list[ContextTurn], question: str) -> list[dict[str, str]]:
    """System instruction, then context turns oldest first, then the new question."""
    messages = [{"role": "system", "content": system_prompt}]
    for turn in turns:
        messages.append({
            "role": "assistant" if turn.is_from_bot else "user",
            "content": turn.text,
        })
    messages.append({"role": "user", "content": question})
    return messages


class MessageResolver:
    """
    Runs the resolution pipeline for inbound messages.

    Every error raised inside the pipeline is converted to a single
    user-facing reply; raw exception text never reaches the user.
    """

    def __init__(
        self,
        repository: SupportRepository,
        limiter: AbuseRateLimiter,
        matcher: FaqMatcher,
        context_store: ConversationStore,
        escalation: EscalationDecider,
        llm: LLMProvider,
        speech: Optional[SpeechToTextProvider] = None,
    ):
        self.repository = repository
        self.limiter = limiter
        self.matcher = matcher
        self.context_store = context_store
        self.escalation = escalation
        self.llm = llm
        self.speech = speech

    async def resolve(self, message: InboundMessage) -> Resolution:
        """
        Resolve one inbound message.

        Args:
            message: Text or voice message from the chat transport

        Returns:
            The reply and the outcome that produced it
        """
        transcript = None
        try:
            if message.voice:
                transcript = await self._transcribe(message)
                if not transcript:
                    return Resolution(outcome=Outcome.not_understood, reply=not_understood_reply)
                text = transcript
            else:
                text = (message.text or "").strip()

            if not text:
                return Resolution(outcome=Outcome.empty, reply=empty_reply)

            user = await self._register(message)

            if await self.limiter.check_limit(message.identity):
                raise RateLimitRejection(message.identity)

            await self.repository.increment_request_count(user.id)

            if is_prohibited(text):
                raise PolicyRejection(message.identity)

            faq_answer = await self.matcher.find_answer(text)
            if faq_answer:
                logger.info("FAQ answer found for user %s", user.id)
                await self.context_store.record_exchange(user.id, text, faq_answer)
                return Resolution(
                    outcome=Outcome.faq_answered,
                    reply=faq_answer,
                    transcript=transcript,
                    markup=True,
                )

            return await self._answer_with_model(user, text, transcript)

        except RateLimitRejection:
            logger.info("Rejected message from %s: rate limit", message.identity)
            return Resolution(
                outcome=Outcome.rejected_blocked,
                reply=rate_limited_reply,
                transcript=transcript,
            )
        except PolicyRejection:
            logger.info("Rejected message from %s: content policy", message.identity)
            return Resolution(
                outcome=Outcome.rejected_policy,
                reply=policy_reply,
                transcript=transcript,
            )
        except Exception:
            logger.exception("Error resolving message from %s", message.identity)
            return Resolution(
                outcome=Outcome.model_failed,
                reply=technical_error_reply,
                transcript=transcript,
            )

    async def _transcribe(self, message: InboundMessage) -> str:
        if self.speech is None:
            logger.warning("Voice message received but no speech-to-text provider is configured")
            return ""
        transcript = await self.speech.transcribe(message.voice, message.voice_filename)
        return (transcript or "").strip()

    async def _register(self, message: InboundMessage) -> UserRecord:
        """Get the user for an identity, creating it on first contact."""
        user = await self.repository.get_user_by_identity(message.identity)
        if user is not None:
            return user

        try:
            user = await self.repository.create_user(
                identity=message.identity,
                username=message.username,
                first_name=message.first_name,
                last_name=message.last_name,
            )
        except PersistenceError:
            # A concurrent first message may have registered the identity already
            user = await self.repository.get_user_by_identity(message.identity)
            if user is None:
                raise
            return user

        logger.info("New user registered: %s", message.identity)
        return user

    async def _answer_with_model(
        self, user: UserRecord, text: str, transcript: Optional[str]
    ) -> Resolution:
        # Context is read before the current message is stored
        turns = await self.context_store.recent_turns(user.id)
        answer = await self.llm.complete_chat(build_chat_messages(turns, text))
        if not answer:
            raise ProviderError("Language model returned an empty completion")

        reply, ticket_id = await self.escalation.review(user.id, text, answer)
        await self.context_store.record_exchange(user.id, text, reply)

        return Resolution(
            outcome=Outcome.model_answered,
            reply=reply,
            ticket_id=ticket_id,
            transcript=transcript,
            markup=True,
        )
