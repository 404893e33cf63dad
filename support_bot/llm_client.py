"""
LLM and speech-to-text clients with support for OpenAI-compatible APIs and mock mode.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from .errors import ProviderError

logger = logging.getLogger(__name__)


# Marker the mock provider uses when it has no canned answer. Matches the
# first escalation marker so offline runs still exercise ticket creation.
MOCK_UNCERTAIN_ANSWER = (
    "I'm sorry, this question requires a specialist from our technical support team."
)


class LLMProvider(ABC):
    """Abstract base class for chat-completion providers."""

    @abstractmethod
    async def complete_chat(self, messages: list[dict[str, str]]) -> str:
        """Generate a completion for an ordered list of chat messages."""
        pass

    @property
    @abstractmethod
    def is_mock(self) -> bool:
        """Whether this is a mock provider."""
        pass


class OpenAICompatibleProvider(LLMProvider):
    """Provider for OpenAI-compatible chat-completion APIs."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 500,
        temperature: float = 0.7,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        if not self.api_key:
            raise ValueError("OpenAI API key is required")

        # Import here to avoid dependency issues in mock mode
        from openai import AsyncOpenAI

        client_kwargs = {"api_key": self.api_key}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url

        self.client = AsyncOpenAI(**client_kwargs)

    @property
    def is_mock(self) -> bool:
        return False

    async def complete_chat(self, messages: list[dict[str, str]]) -> str:
        from openai import OpenAIError

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as e:
            raise ProviderError(f"Chat completion failed: {e}") from e

        content = response.choices[0].message.content or ""
        return content.strip()


class MockProvider(LLMProvider):
    """Deterministic mock provider for running without an API key."""

    canned_answers = {
        "hello": "Hello! How can I help you today?",
        "hi": "Hello! How can I help you today?",
        "thank": "You're welcome! Let me know if there is anything else.",
    }

    @property
    def is_mock(self) -> bool:
        return True

    async def complete_chat(self, messages: list[dict[str, str]]) -> str:
        question = messages[-1]["content"].casefold() if messages else ""
        for trigger, answer in self.canned_answers.items():
            if trigger in question.split() or question.startswith(trigger):
                return answer
        return MOCK_UNCERTAIN_ANSWER


class SpeechToTextProvider(ABC):
    """Abstract base class for speech-to-text providers."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "voice.oga") -> str:
        """Transcribe audio. Returns the empty string when nothing was recognized."""
        pass


class WhisperProvider(SpeechToTextProvider):
    """Speech-to-text through the OpenAI audio transcription endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = "whisper-1",
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self.model = model

        if not self.api_key:
            raise ValueError("OpenAI API key is required")

        from openai import AsyncOpenAI

        client_kwargs = {"api_key": self.api_key}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url

        self.client = AsyncOpenAI(**client_kwargs)

    async def transcribe(self, audio: bytes, filename: str = "voice.oga") -> str:
        if not audio:
            return ""
        try:
            transcription = await self.client.audio.transcriptions.create(
                file=(filename, audio),
                model=self.model,
            )
        except Exception as e:
            logger.error("Voice transcription failed: %s", e)
            return ""
        return (transcription.text or "").strip()


class MockSpeechToText(SpeechToTextProvider):
    """Mock speech-to-text that never recognizes anything."""

    async def transcribe(self, audio: bytes, filename: str = "voice.oga") -> str:
        return ""


def get_llm_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    model: str = "gpt-4o-mini",
) -> LLMProvider:
    """
    Factory function to get the appropriate LLM client.
    Returns MockProvider if no API key is available.
    """
    api_key = api_key or os.getenv("OPENAI_API_KEY")

    if api_key:
        try:
            return OpenAICompatibleProvider(api_key=api_key, base_url=base_url, model=model)
        except Exception as e:
            logger.warning("Failed to initialize OpenAI client: %s. Falling back to mock mode.", e)
            return MockProvider()
    else:
        logger.info("OPENAI_API_KEY not set. Running in mock mode with deterministic outputs.")
        return MockProvider()


def get_speech_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    model: str = "whisper-1",
) -> SpeechToTextProvider:
    """Factory function for the speech-to-text client, mirroring get_llm_client."""
    api_key = api_key or os.getenv("OPENAI_API_KEY")

    if api_key:
        try:
            return WhisperProvider(api_key=api_key, base_url=base_url, model=model)
        except Exception as e:
            logger.warning("Failed to initialize transcription client: %s. Voice disabled.", e)
            return MockSpeechToText()
    return MockSpeechToText()
