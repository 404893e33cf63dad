"""
Tests for the message resolution pipeline.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FailingLLM, ScriptedLLM, ScriptedSpeech
from support_bot.errors import PersistenceError
from support_bot.kb.conversation_store import ConversationStore
from support_bot.kb.faq_matcher import FaqMatcher
from support_bot.pipeline.escalation import EscalationDecider
from support_bot.pipeline.orchestrator import (
    MessageResolver, build_chat_messages, empty_reply, not_understood_reply,
    policy_reply, rate_limited_reply, system_prompt, technical_error_reply
)
from support_bot.schemas import ContextTurn, FaqDraft, InboundMessage, Outcome


def text_message(text, identity="42", **kwargs):
    return InboundMessage(identity=identity, text=text, **kwargs)


async def stored_texts(repository, identity="42"):
    user = await repository.get_user_by_identity(identity)
    if user is None:
        return []
    messages = await repository.get_recent_messages(user.id, 50)
    return [(message.text, message.is_from_bot) for message in reversed(messages)]


def make_resolver(repository, limiter, llm, speech=None, matcher=None):
    return MessageResolver(
        repository=repository,
        limiter=limiter,
        matcher=matcher or FaqMatcher(repository),
        context_store=ConversationStore(repository, limit=5),
        escalation=EscalationDecider(repository),
        llm=llm,
        speech=speech,
    )


class TestBuildChatMessages:

    def test_order_and_roles(self):
        turns = [
            ContextTurn(text="hi", is_from_bot=False),
            ContextTurn(text="hello!", is_from_bot=True),
        ]
        messages = build_chat_messages(turns, "my router blinks")

        assert messages[0] == {"role": "system", "content": system_prompt}
        assert messages[1:] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello!"},
            {"role": "user", "content": "my router blinks"},
        ]


class TestFaqPath:

    @pytest.mark.asyncio
    async def test_faq_answer_skips_model_and_persists_exchange(self, repository, resolver, llm):
        await repository.add_faq(FaqDraft(question="How do I reset my password?", answer="Use the reset link."))

        result = await resolver.resolve(text_message("How do I reset my password?"))

        assert result.outcome == Outcome.faq_answered
        assert result.reply == "Use the reset link."
        assert result.markup
        assert llm.calls == []
        assert await stored_texts(repository) == [
            ("How do I reset my password?", False),
            ("Use the reset link.", True),
        ]


class TestModelPath:

    @pytest.mark.asyncio
    async def test_model_answer_is_persisted(self, repository, resolver, llm):
        llm.answers = ["Restart the router and wait two minutes."]

        result = await resolver.resolve(text_message("Internet is down"))

        assert result.outcome == Outcome.model_answered
        assert result.reply == "Restart the router and wait two minutes."
        assert result.ticket_id is None
        assert await stored_texts(repository) == [
            ("Internet is down", False),
            ("Restart the router and wait two minutes.", True),
        ]

    @pytest.mark.asyncio
    async def test_context_precedes_new_question(self, resolver, llm):
        llm.answers = ["First answer.", "Second answer."]

        await resolver.resolve(text_message("first question"))
        await resolver.resolve(text_message("second question"))

        second_call = llm.calls[1]
        assert second_call[0]["role"] == "system"
        assert second_call[1:] == [
            {"role": "user", "content": "first question"},
            {"role": "assistant", "content": "First answer."},
            {"role": "user", "content": "second question"},
        ]

    @pytest.mark.asyncio
    async def test_uncertain_answer_opens_ticket(self, repository, resolver, llm):
        llm.answers = ["This question requires a specialist from our technical support team."]

        result = await resolver.resolve(text_message("Why was I charged twice?"))

        assert result.outcome == Outcome.model_answered
        assert result.ticket_id is not None
        assert f"#{result.ticket_id}" in result.reply

        user = await repository.get_user_by_identity("42")
        tickets = await repository.list_user_tickets(user.id)
        assert [ticket.id for ticket in tickets] == [result.ticket_id]
        assert tickets[0].description == "Why was I charged twice?"

    @pytest.mark.asyncio
    async def test_model_failure_gives_generic_reply(self, repository, limiter):
        resolver = make_resolver(repository, limiter, FailingLLM())

        result = await resolver.resolve(text_message("Internet is down"))

        assert result.outcome == Outcome.model_failed
        assert result.reply == technical_error_reply
        assert "timeout" not in result.reply
        assert await stored_texts(repository) == []

    @pytest.mark.asyncio
    async def test_empty_completion_is_a_failure(self, repository, limiter):
        resolver = make_resolver(repository, limiter, ScriptedLLM(answers=[""]))

        result = await resolver.resolve(text_message("Internet is down"))

        assert result.outcome == Outcome.model_failed

    @pytest.mark.asyncio
    async def test_persistence_failure_gives_generic_reply(self, repository, limiter, llm):
        matcher = FaqMatcher(repository)
        matcher.find_answer = AsyncMock(side_effect=PersistenceError("db down"))
        resolver = make_resolver(repository, limiter, llm, matcher=matcher)

        result = await resolver.resolve(text_message("Internet is down"))

        assert result.outcome == Outcome.model_failed
        assert result.reply == technical_error_reply


class TestRejections:

    @pytest.mark.asyncio
    async def test_policy_rejection_is_not_persisted(self, repository, resolver, llm):
        result = await resolver.resolve(text_message("this is spam"))

        assert result.outcome == Outcome.rejected_policy
        assert result.reply == policy_reply
        assert llm.calls == []
        assert await stored_texts(repository) == []
        # The request still counts against the user
        assert (await repository.get_user_by_identity("42")).request_count == 1

    @pytest.mark.asyncio
    async def test_sixth_message_in_a_minute_is_throttled(self, repository, resolver, llm):
        for index in range(5):
            result = await resolver.resolve(text_message(f"question {index}"))
            assert result.outcome == Outcome.model_answered

        result = await resolver.resolve(text_message("question 6"))

        assert result.outcome == Outcome.rejected_blocked
        assert result.reply == rate_limited_reply
        assert len(llm.calls) == 5
        assert (await repository.get_user_by_identity("42")).request_count == 5

    @pytest.mark.asyncio
    async def test_blocked_user_never_reaches_matcher_model_or_storage(self, repository, limiter, llm):
        user = await repository.create_user("42")
        await repository.set_blocked(user.id, True)
        matcher = FaqMatcher(repository)
        matcher.find_answer = AsyncMock(return_value=None)
        resolver = make_resolver(repository, limiter, llm, matcher=matcher)

        result = await resolver.resolve(text_message("How do I reset my password?"))

        assert result.outcome == Outcome.rejected_blocked
        matcher.find_answer.assert_not_awaited()
        assert llm.calls == []
        assert await stored_texts(repository) == []
        assert (await repository.get_user(user.id)).request_count == 0

    @pytest.mark.asyncio
    async def test_limiter_runs_before_policy(self, repository, limiter, llm):
        user = await repository.create_user("42")
        await repository.set_blocked(user.id, True)
        resolver = make_resolver(repository, limiter, llm)

        result = await resolver.resolve(text_message("this is spam"))

        assert result.outcome == Outcome.rejected_blocked


class TestVoiceAndEmpty:

    @pytest.mark.asyncio
    async def test_failed_transcription(self, repository, limiter, llm):
        speech = ScriptedSpeech(transcript="")
        limiter.check_limit = AsyncMock(return_value=False)
        resolver = make_resolver(repository, limiter, llm, speech=speech)

        result = await resolver.resolve(InboundMessage(identity="42", voice=b"OggS..."))

        assert result.outcome == Outcome.not_understood
        assert result.reply == not_understood_reply
        limiter.check_limit.assert_not_awaited()
        assert await repository.get_user_by_identity("42") is None

    @pytest.mark.asyncio
    async def test_transcript_goes_through_pipeline(self, repository, limiter, llm):
        await repository.add_faq(FaqDraft(question="How do I reset my password?", answer="Use the reset link."))
        speech = ScriptedSpeech(transcript="How do I reset my password?")
        resolver = make_resolver(repository, limiter, llm, speech=speech)

        result = await resolver.resolve(InboundMessage(identity="42", voice=b"OggS..."))

        assert result.outcome == Outcome.faq_answered
        assert result.transcript == "How do I reset my password?"
        assert speech.calls == 1

    @pytest.mark.asyncio
    async def test_voice_without_speech_provider(self, repository, limiter, llm):
        resolver = make_resolver(repository, limiter, llm, speech=None)

        result = await resolver.resolve(InboundMessage(identity="42", voice=b"OggS..."))

        assert result.outcome == Outcome.not_understood

    @pytest.mark.asyncio
    async def test_empty_message(self, repository, resolver, llm):
        result = await resolver.resolve(text_message("   "))

        assert result.outcome == Outcome.empty
        assert result.reply == empty_reply
        assert llm.calls == []


class TestRegistration:

    @pytest.mark.asyncio
    async def test_first_message_registers_user(self, repository, resolver):
        await resolver.resolve(text_message("hello", username="jdoe", first_name="Jo"))

        user = await repository.get_user_by_identity("42")
        assert user.username == "jdoe"
        assert user.first_name == "Jo"
        assert user.request_count == 1

    @pytest.mark.asyncio
    async def test_overlapping_first_messages_both_answered(self, repository, resolver, llm):
        results = await asyncio.gather(
            resolver.resolve(text_message("hello one", identity="900")),
            resolver.resolve(text_message("hello two", identity="900")),
        )

        assert [result.outcome for result in results] == [Outcome.model_answered] * 2
        user = await repository.get_user_by_identity("900")
        assert user.request_count == 2
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_registration_race_uses_existing_user(self, repository, limiter, llm):
        create_user = repository.create_user

        async def create_after_concurrent_winner(**kwargs):
            # Another message registers the identity between lookup and insert
            await create_user(**kwargs)
            raise PersistenceError("create_user failed")

        repository.create_user = create_after_concurrent_winner
        resolver = make_resolver(repository, limiter, llm)

        result = await resolver.resolve(text_message("hello", identity="901"))

        assert result.outcome == Outcome.model_answered
        assert (await repository.get_user_by_identity("901")).request_count == 1

    @pytest.mark.asyncio
    async def test_registration_failure_without_user_is_reported(self, repository, limiter, llm):
        repository.create_user = AsyncMock(side_effect=PersistenceError("create_user failed"))
        resolver = make_resolver(repository, limiter, llm)

        result = await resolver.resolve(text_message("hello", identity="902"))

        assert result.outcome == Outcome.model_failed
        assert result.reply == technical_error_reply
        assert llm.calls == []
