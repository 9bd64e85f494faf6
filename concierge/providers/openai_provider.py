"""OpenAI-backed transcription (Whisper) and JSON chat completion."""

from __future__ import annotations

import logging
from typing import AsyncIterator

from openai import AsyncOpenAI, OpenAIError

from concierge.config import settings
from concierge.errors import CompletionError, TranscriptionError

from .base import CompletionClient, Transcriber

log = logging.getLogger("concierge.providers.openai")


class _OpenAIBackend:
    """Builds the AsyncOpenAI client on first use so the app starts without a key."""

    def __init__(self, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
        self._api_key = api_key if api_key is not None else settings.openai_api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise ValueError("OpenAI API key is required (set OPENAI_API_KEY)")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=settings.llm_timeout)
        return self._client


class OpenAITranscriber(_OpenAIBackend, Transcriber):
    """Whisper transcription, Russian by default."""

    async def transcribe(self, audio: bytes, filename: str) -> str:
        try:
            result = await self.client.audio.transcriptions.create(
                file=(filename, audio),
                model=settings.transcription_model,
                language=settings.transcription_language,
                response_format="json",
            )
        except (OpenAIError, ValueError) as e:
            log.error("Transcription failed: %s", e)
            raise TranscriptionError(str(e)) from e

        text = result if isinstance(result, str) else getattr(result, "text", "")
        return (text or "").strip()


class OpenAICompletionClient(_OpenAIBackend, CompletionClient):
    """Chat completions constrained to a JSON object response."""

    async def complete(self, messages: list[dict[str, str]]) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=settings.completion_model,
                messages=messages,
                temperature=settings.completion_temperature,
                max_tokens=settings.completion_max_tokens,
                response_format={"type": "json_object"},
            )
        except (OpenAIError, ValueError) as e:
            log.error("Completion failed: %s", e)
            raise CompletionError(str(e)) from e

        if not completion.choices:
            raise CompletionError("Completion returned no choices")
        return completion.choices[0].message.content or ""

    async def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        try:
            chunks = await self.client.chat.completions.create(
                model=settings.completion_model,
                messages=messages,
                temperature=settings.completion_temperature,
                max_tokens=settings.stream_max_tokens,
                response_format={"type": "json_object"},
                stream=True,
            )
            async for chunk in chunks:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except (OpenAIError, ValueError) as e:
            log.error("Completion stream failed: %s", e)
            raise CompletionError(str(e)) from e
