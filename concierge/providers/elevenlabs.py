"""ElevenLabs text-to-speech over plain HTTP."""

from __future__ import annotations

import logging
import re

import httpx

from concierge.config import settings
from concierge.errors import (
    SynthesisBlockedError,
    SynthesisError,
    SynthesisTimeoutError,
    SynthesisTransportError,
)

from .base import SpeechSynthesizer

log = logging.getLogger("concierge.providers.elevenlabs")

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.3,
    "use_speaker_boost": True,
}


def is_html_block_page(content_type: str, body: str) -> bool:
    """True when a proxy / CDN answered with an HTML page instead of the API."""
    stripped = body.lstrip().lower()
    return (
        "text/html" in content_type.lower()
        or stripped.startswith("<!doctype html")
        or stripped.startswith("<html")
    )


class ElevenLabsSynthesizer(SpeechSynthesizer):
    """Synthesize mp3 audio with the multilingual ElevenLabs model."""

    def __init__(
        self,
        api_key: str | None = None,
        voice_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.elevenlabs_api_key
        self._voice_id = voice_id or settings.elevenlabs_voice_id
        self._client = client

    async def synthesize(self, text: str) -> bytes:
        if not self._api_key:
            raise SynthesisError("ELEVENLABS_API_KEY is not set")

        url = f"{settings.elevenlabs_api_url}/text-to-speech/{self._voice_id}"
        payload = {
            "text": text,
            "model_id": settings.elevenlabs_model_id,
            "voice_settings": VOICE_SETTINGS,
        }
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self._api_key,
        }

        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=settings.tts_timeout) as client:
                    resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise SynthesisTimeoutError(f"ElevenLabs request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise SynthesisTransportError(f"ElevenLabs request failed: {e}") from e

        if resp.status_code >= 400:
            content_type = resp.headers.get("content-type", "")
            body = resp.text
            if is_html_block_page(content_type, body):
                snippet = re.sub(r"\s+", " ", body[:1000])
                log.error("ElevenLabs blocked (status %d): %s", resp.status_code, snippet[:200])
                raise SynthesisBlockedError(
                    f"ELEVENLABS_BLOCKED: status={resp.status_code} bodySnippet={snippet!r}",
                    status_code=resp.status_code,
                )
            raise SynthesisError(
                f"ElevenLabs API error: {resp.status_code} - {body[:500]}",
                status_code=resp.status_code,
            )

        return resp.content
