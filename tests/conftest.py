"""Shared fakes and fixtures for the concierge and caller tests."""

import asyncio
import json

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from caller.devices import AudioPlayer, CaptureDevice, CaptureError, Recording
from concierge.errors import CompletionError, SynthesisError, TranscriptionError
from concierge.models import DialogueContext
from concierge.providers.base import (
    CompletionClient,
    DeliveryResult,
    DocumentRenderer,
    MessageDelivery,
    SpeechSynthesizer,
    Transcriber,
)
from listings.store import ListingStore


def completion_json(response="", action="none", **params) -> str:
    return json.dumps(
        {"response": response, "params_update": params, "action": action},
        ensure_ascii=False,
    )


class FakeCompletion(CompletionClient):
    """Scripted completion. ``stream`` yields the same reply in small chunks."""

    def __init__(self, reply=None, *, fail_stream=False, fail_complete=False, delay=0.0):
        self.reply = reply if reply is not None else completion_json("Какой у вас бюджет?")
        self.fail_stream = fail_stream
        self.fail_complete = fail_complete
        self.delay = delay
        self.calls: list[list[dict]] = []
        self.stream_calls = 0

    async def complete(self, messages):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_complete:
            raise CompletionError("completion down")
        return self.reply

    async def stream(self, messages):
        self.stream_calls += 1
        if self.fail_stream:
            raise CompletionError("stream broke")
        if self.delay:
            await asyncio.sleep(self.delay)
        for i in range(0, len(self.reply), 7):
            yield self.reply[i:i + 7]


class FakeSynthesizer(SpeechSynthesizer):
    """Returns ``b"mp3:" + text``; phrases containing a ``fail_on`` marker raise."""

    def __init__(self, fail_on=(), error_cls=SynthesisError, delay=0.0):
        self.fail_on = tuple(fail_on)
        self.error_cls = error_cls
        self.delay = delay
        self.calls: list[str] = []

    async def synthesize(self, text):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(marker in text for marker in self.fail_on):
            raise self.error_cls(f"cannot speak {text!r}")
        return b"mp3:" + text.encode("utf-8")


class FakeTranscriber(Transcriber):
    def __init__(self, text="", fail=False):
        self.text = text
        self.fail = fail
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio, filename):
        self.calls.append((audio, filename))
        if self.fail:
            raise TranscriptionError("whisper down")
        return self.text


class FakeRenderer(DocumentRenderer):
    def __init__(self, fail=False):
        self.fail = fail
        self.rendered: list[str] = []

    async def render(self, listing):
        from concierge.errors import RenderError

        if self.fail:
            raise RenderError("browser crashed")
        self.rendered.append(listing.id)
        return b"%PDF-1.4 " + listing.id.encode()


class FakeDelivery(MessageDelivery):
    def __init__(self, result=None):
        self.result = result or DeliveryResult(success=True, message_id="msg-1")
        self.files: list[tuple[str, str, str]] = []
        self.messages: list[tuple[str, str]] = []

    async def send_file(self, phone_number, file_url, caption=""):
        self.files.append((phone_number, file_url, caption))
        return self.result

    async def send_message(self, phone_number, message):
        self.messages.append((phone_number, message))
        return self.result


class FakePlayer(AudioPlayer):
    """Each ``play`` blocks until the test calls ``finish()`` or ``fail()``.

    With ``auto=True`` clips finish on the next loop iteration.
    """

    def __init__(self, auto=False):
        self.auto = auto
        self.started: list[bytes] = []
        self.stops = 0
        self._current: asyncio.Future | None = None

    async def play(self, audio):
        self.started.append(audio)
        if self.auto:
            await asyncio.sleep(0)
            return
        self._current = asyncio.get_running_loop().create_future()
        await self._current

    def stop(self):
        self.stops += 1

    def finish(self):
        if self._current is not None and not self._current.done():
            self._current.set_result(None)

    def fail(self, exc=None):
        if self._current is not None and not self._current.done():
            self._current.set_exception(exc or RuntimeError("decode error"))


class FakeCapture(CaptureDevice):
    def __init__(self, data=b"\x1a" * 4000, open_error=None):
        self.data = data
        self.open_error = open_error
        self.opened = False
        self.closed = 0
        self.recording = False

    async def open(self):
        if self.open_error is not None:
            raise CaptureError(self.open_error)
        self.opened = True

    async def start(self):
        self.recording = True

    async def stop(self):
        self.recording = False
        return Recording(self.data)

    async def close(self):
        self.closed += 1


async def drain():
    """Let pending callbacks and freshly scheduled tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    return ListingStore.from_json()


@pytest.fixture
def context():
    return DialogueContext(session_id="test-session")
