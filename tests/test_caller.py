"""Tests for the caller side: call state, ordered playback, SSE parsing, client."""

import asyncio
import base64
import json

import pytest
from aiohttp import web
from aiohttp import test_utils

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from conftest import FakeCapture, FakePlayer, drain

from caller import (
    AudioPlaybackQueue,
    CallState,
    CallStateMachine,
    CaptureError,
    CaptureErrorKind,
    SpeakingState,
    VoiceChatClient,
    VoiceChatError,
)
from caller.sse import SseParser, iter_sse_events
from concierge.synthesis import format_sse


class TestCallStateMachine:
    def test_happy_path(self):
        sm = CallStateMachine()
        assert sm.begin_connect()
        assert sm.connected("s-1")
        assert sm.call_state == CallState.ACTIVE
        assert sm.session_id == "s-1"
        assert sm.end()
        assert sm.call_state == CallState.ENDED
        assert sm.reset()
        assert sm.call_state == CallState.IDLE

    def test_illegal_transitions_are_noops(self):
        sm = CallStateMachine()
        assert not sm.connected("s-1")
        assert not sm.end()
        assert not sm.reset()
        assert not sm.begin_recording()
        assert sm.call_state == CallState.IDLE

    def test_failed_connect_returns_to_idle_with_error(self):
        sm = CallStateMachine()
        sm.begin_connect()
        assert sm.fail_connect("Микрофон не найден.")
        assert sm.call_state == CallState.IDLE
        assert sm.error == "Микрофон не найден."
        sm.begin_connect()
        assert sm.error is None

    def test_recording_only_when_idle_and_not_processing(self):
        sm = CallStateMachine()
        sm.begin_connect()
        sm.connected("s-1")

        sm.set_processing(True)
        assert not sm.begin_recording()
        sm.set_processing(False)

        assert sm.playback_started()
        assert sm.speaking == SpeakingState.ASSISTANT
        assert not sm.begin_recording()
        assert sm.playback_idle()

        assert sm.begin_recording()
        assert sm.speaking == SpeakingState.USER
        assert not sm.playback_started()
        assert sm.finish_recording()
        assert sm.speaking == SpeakingState.IDLE

    def test_end_resets_sub_state(self):
        sm = CallStateMachine()
        sm.begin_connect()
        sm.connected("s-1")
        sm.begin_recording()
        sm.set_processing(True)
        sm.end()
        assert sm.speaking == SpeakingState.IDLE
        assert sm.processing is False
        assert sm.session_id is None


class TestCaptureError:
    def test_distinct_messages(self):
        messages = {CaptureError(kind).user_message for kind in CaptureErrorKind}
        assert len(messages) == 3

    def test_accepts_string_kind(self):
        assert CaptureError("no_mic_found").kind == CaptureErrorKind.NO_MIC_FOUND


class TestAudioPlaybackQueue:
    def _queue(self, player):
        log = []
        queue = AudioPlaybackQueue(
            player,
            on_start=lambda: log.append("start"),
            on_idle=lambda: log.append("idle"),
        )
        return queue, log

    @pytest.mark.asyncio
    async def test_plays_in_order_one_at_a_time(self):
        player = FakePlayer()
        queue, log = self._queue(player)

        queue.enqueue(b"a")
        queue.enqueue(b"b")
        await drain()
        assert player.started == [b"a"]
        assert queue.pending == 1

        player.finish()
        await drain()
        assert player.started == [b"a", b"b"]

        player.finish()
        await drain()
        assert not queue.playing
        assert log == ["start", "idle"]
        await asyncio.wait_for(queue.wait_idle(), timeout=1)

    @pytest.mark.asyncio
    async def test_failed_clip_advances(self):
        player = FakePlayer()
        queue, _ = self._queue(player)
        queue.enqueue(b"bad")
        queue.enqueue(b"good")
        await drain()

        player.fail()
        await drain()
        assert player.started == [b"bad", b"good"]

    @pytest.mark.asyncio
    async def test_cancel_drops_queue_and_stale_completion(self):
        player = FakePlayer()
        queue, log = self._queue(player)
        for clip in (b"a", b"b", b"c"):
            queue.enqueue(clip)
        await drain()

        queue.cancel()
        await drain()
        assert player.stops == 1
        assert queue.pending == 0
        assert not queue.playing
        assert player.started == [b"a"]
        assert log == ["start", "idle"]

        queue.enqueue(b"d")
        await drain()
        assert player.started == [b"a", b"d"]
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_during_second_clip_discards_third(self):
        player = FakePlayer()
        queue, _ = self._queue(player)
        for clip in (b"1", b"2", b"3"):
            queue.enqueue(clip)
        await drain()
        player.finish()
        await drain()
        assert player.started == [b"1", b"2"]

        queue.cancel()
        player.finish()
        await drain()
        assert player.started == [b"1", b"2"]
        assert not queue.playing

    @pytest.mark.asyncio
    async def test_cancel_while_idle_is_quiet(self):
        player = FakePlayer()
        queue, log = self._queue(player)
        queue.cancel()
        assert log == []
        assert player.stops == 0


class TestSseParser:
    def test_event_and_multiline_data(self):
        parser = SseParser()
        lines = ["event: audio", "data: a", "data: b", ""]
        events = [e for e in map(parser.feed, lines) if e is not None]
        assert len(events) == 1
        assert events[0].event == "audio"
        assert events[0].data == "a\nb"

    def test_comments_and_default_event(self):
        parser = SseParser()
        assert parser.feed(": keepalive") is None
        assert parser.feed("data: x") is None
        event = parser.feed("")
        assert (event.event, event.data) == ("message", "x")

    @pytest.mark.asyncio
    async def test_iterates_byte_lines(self):
        async def lines():
            for frame in (format_sse("audio", "QUJD"), format_sse("done", "{}")):
                for line in frame.splitlines(keepends=True):
                    yield line.encode()

        events = [e async for e in iter_sse_events(lines())]
        assert [(e.event, e.data) for e in events] == [("audio", "QUJD"), ("done", "{}")]


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


DONE = {
    "response": "Отлично!",
    "action": "confirm_interest",
    "apartment": {"id": "apt-001"},
    "landingUrl": "/apartment/apt-001",
    "params": {"price_max": 2000000},
}


class FakeConcierge:
    """A stand-in server speaking the concierge HTTP + SSE protocol."""

    def __init__(self, start_status=200, voice_status=200):
        self.start_status = start_status
        self.voice_status = voice_status
        self.ended: list[str] = []
        self.turns: list[tuple[str, bytes]] = []
        self.presentations: list[dict] = []
        self.hold = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/session/start", self.start)
        app.router.add_post("/session/end", self.end)
        app.router.add_post("/chat/voice-stream", self.voice)
        app.router.add_post("/send-presentation", self.presentation)
        return app

    async def start(self, request):
        if self.start_status != 200:
            return web.json_response({"error": "boom"}, status=self.start_status)
        return web.json_response({"sessionId": "s-1", "greeting": "Привет", "audio": _b64(b"greet")})

    async def end(self, request):
        body = await request.json()
        self.ended.append(body["sessionId"])
        return web.json_response({"success": True, "analytics": {"sessionId": body["sessionId"]}})

    async def voice(self, request):
        form = await request.post()
        self.turns.append((form["sessionId"], form["audio"].file.read()))
        if self.hold is not None:
            await asyncio.wait_for(self.hold.wait(), timeout=5)
        if self.voice_status != 200:
            return web.json_response({"error": "boom"}, status=self.voice_status)
        body = (
            format_sse("audio", _b64(b"one"))
            + format_sse("audio", _b64(b"two"))
            + format_sse("error", json.dumps({"index": 2, "kind": "api"}))
            + format_sse("done", json.dumps(DONE, ensure_ascii=False))
        )
        return web.Response(text=body, content_type="text/event-stream")

    async def presentation(self, request):
        self.presentations.append(await request.json())
        return web.json_response({"success": True})


class TestVoiceChatClient:
    async def _serve(self, concierge):
        server = test_utils.TestServer(concierge.app())
        await server.start_server()
        return server

    def _client(self, server, capture=None, player=None):
        return VoiceChatClient(
            str(server.make_url("/")),
            capture or FakeCapture(),
            player or FakePlayer(auto=True),
            reset_delay=0.01,
        )

    @pytest.mark.asyncio
    async def test_full_call(self):
        concierge = FakeConcierge()
        server = await self._serve(concierge)
        capture, player = FakeCapture(), FakePlayer(auto=True)
        client = self._client(server, capture, player)
        try:
            assert await client.start_call()
            assert client.state.call_state == CallState.ACTIVE
            assert client.last_response == "Привет"
            assert player.started == [b"greet"]

            assert await client.start_recording()
            assert capture.recording
            done = await client.stop_recording()
            await asyncio.wait_for(client.queue.wait_idle(), timeout=1)

            assert done["action"] == "confirm_interest"
            assert client.landing_url == "/apartment/apt-001"
            assert client.last_response == "Отлично!"
            assert player.started == [b"greet", b"one", b"two"]
            assert concierge.turns == [("s-1", capture.data)]
            assert client.state.processing is False
            assert client.state.speaking == SpeakingState.IDLE

            analytics = await client.end_call()
            assert analytics == {"sessionId": "s-1"}
            assert client.state.call_state == CallState.ENDED
            assert capture.closed == 1
            assert concierge.ended == ["s-1"]

            await asyncio.sleep(0.05)
            assert client.state.call_state == CallState.IDLE
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_short_recording_is_dropped(self):
        concierge = FakeConcierge()
        server = await self._serve(concierge)
        client = self._client(server, capture=FakeCapture(data=b"x" * 10))
        try:
            await client.start_call()
            await client.start_recording()
            assert await client.stop_recording() is None
            assert concierge.turns == []
            assert client.state.can_record
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_microphone_denied(self):
        concierge = FakeConcierge()
        server = await self._serve(concierge)
        capture = FakeCapture(open_error=CaptureErrorKind.PERMISSION_DENIED)
        client = self._client(server, capture=capture)
        try:
            with pytest.raises(CaptureError):
                await client.start_call()
            assert client.state.call_state == CallState.IDLE
            assert client.state.error == CaptureError(CaptureErrorKind.PERMISSION_DENIED).user_message
            assert concierge.ended == []
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_server_refuses_session(self):
        server = await self._serve(FakeConcierge(start_status=500))
        capture = FakeCapture()
        client = self._client(server, capture=capture)
        try:
            with pytest.raises(VoiceChatError):
                await client.start_call()
            assert client.state.call_state == CallState.IDLE
            assert client.state.error.startswith("Не удалось начать звонок")
            assert capture.closed == 1
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_turn_failure_sets_error(self):
        server = await self._serve(FakeConcierge(voice_status=500))
        client = self._client(server)
        try:
            await client.start_call()
            await client.start_recording()
            assert await client.stop_recording() is None
            assert client.state.error == "Ошибка обработки голосового сообщения"
            assert client.state.processing is False
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_hang_up_mid_turn(self):
        concierge = FakeConcierge()
        concierge.hold = asyncio.Event()
        server = await self._serve(concierge)
        client = self._client(server)
        try:
            await client.start_call()
            await client.start_recording()
            turn = asyncio.ensure_future(client.stop_recording())
            await asyncio.sleep(0.1)

            await client.end_call()
            assert await turn is None
            assert client.state.call_state == CallState.ENDED
            assert client.state.processing is False
        finally:
            concierge.hold.set()
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_send_presentation(self):
        concierge = FakeConcierge()
        server = await self._serve(concierge)
        client = self._client(server)
        try:
            result = await client.send_presentation("apt-001", "79991234567")
            assert result == {"success": True, "error": None}
            assert concierge.presentations == [
                {"apartmentId": "apt-001", "phoneNumber": "79991234567"}
            ]
        finally:
            await client.close()
            await server.close()
