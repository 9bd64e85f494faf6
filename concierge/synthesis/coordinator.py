"""Phrase-by-phrase speech synthesis for one turn.

Phrases are synthesized one after another and each event is yielded as
soon as its audio exists, so the wire order always equals segmentation
order and no resequencing is needed. The client plays phrase N while
phrase N+1 is being synthesized.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union

from concierge.config import settings
from concierge.errors import SynthesisError
from concierge.providers.base import SpeechSynthesizer

from .segmenter import segment_phrases
from .sse import format_sse

log = logging.getLogger("concierge.synthesis")


@dataclass(frozen=True)
class AudioEvent:
    index: int
    text: str
    audio: bytes

    event = "audio"

    def to_sse(self) -> str:
        return format_sse(self.event, base64.b64encode(self.audio).decode("ascii"))


@dataclass(frozen=True)
class ErrorEvent:
    index: int
    text: str
    kind: str  # blocked | api | timeout | transport
    message: str

    event = "error"

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "text": self.text,
            "kind": self.kind,
            "message": self.message,
        }

    def to_sse(self) -> str:
        return format_sse(self.event, json.dumps(self.to_dict(), ensure_ascii=False))


PhraseEvent = Union[AudioEvent, ErrorEvent]


class _Cancelled(Exception):
    pass


class SynthesisCoordinator:
    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        timeout: float | None = None,
        max_chars: int | None = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._timeout = timeout if timeout is not None else settings.tts_timeout
        self._max_chars = max_chars if max_chars is not None else settings.phrase_max_chars

    async def stream(
        self,
        text: str,
        cancel: asyncio.Event | None = None,
        start_index: int = 0,
    ) -> AsyncIterator[PhraseEvent]:
        """Yield one event per phrase, strictly in order.

        A failed phrase yields an ErrorEvent and the rest still run. Once
        ``cancel`` is set nothing more is yielded, including audio for a
        phrase that was mid-synthesis.
        """
        phrases = segment_phrases(text, self._max_chars)
        log.info("Synthesizing %d phrases", len(phrases))

        for index, phrase in enumerate(phrases, start=start_index):
            if cancel is not None and cancel.is_set():
                log.info("Synthesis cancelled before phrase %d", index)
                return
            try:
                event = await self.synthesize_phrase(index, phrase, cancel)
            except _Cancelled:
                log.info("Synthesis cancelled during phrase %d", index)
                return
            yield event

    async def synthesize_phrase(
        self, index: int, text: str, cancel: asyncio.Event | None = None
    ) -> PhraseEvent:
        try:
            audio = await self._synthesize(text, self._timeout, cancel)
        except asyncio.TimeoutError:
            log.warning("Phrase %d synthesis timed out", index)
            return ErrorEvent(index, text, "timeout", f"Synthesis timed out after {self._timeout}s")
        except SynthesisError as e:
            log.warning("Phrase %d synthesis failed (%s): %s", index, e.kind, e)
            return ErrorEvent(index, text, e.kind, str(e))
        return AudioEvent(index, text, audio)

    async def acknowledge(self, text: str, timeout: float | None = None) -> Optional[AudioEvent]:
        """Synthesize a filler phrase, or give up quietly after ``timeout``."""
        timeout = timeout if timeout is not None else settings.ack_timeout
        try:
            audio = await self._synthesize(text, timeout)
        except (SynthesisError, asyncio.TimeoutError) as e:
            log.warning("Acknowledgement skipped: %s", str(e) or type(e).__name__)
            return None
        return AudioEvent(0, text, audio)

    async def _synthesize(
        self, text: str, timeout: float, cancel: asyncio.Event | None = None
    ) -> bytes:
        call = asyncio.ensure_future(
            asyncio.wait_for(self._synthesizer.synthesize(text), timeout=timeout)
        )
        if cancel is None:
            return await call

        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            abandoned = not call.done()
            if abandoned:
                call.cancel()
        if abandoned:
            raise _Cancelled()
        return call.result()
