"""HTTP + SSE voice-chat client — the caller side of one call.

Typical use::

    async with VoiceChatClient(base_url, mic, speaker) as client:
        await client.start_call()          # greeting plays
        await client.start_recording()
        ...                                # caller speaks
        done = await client.stop_recording()
        # audio frames were played as they streamed in
        await client.end_call()
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Optional

import aiohttp

from caller.devices import AudioPlayer, CaptureDevice, CaptureError, Recording
from caller.playback import AudioPlaybackQueue
from caller.sse import iter_sse_events
from caller.state import CallState, CallStateMachine, SpeakingState

log = logging.getLogger("caller.client")

MIN_RECORDING_BYTES = 1000


class VoiceChatError(Exception):
    """The server could not be reached or refused a request."""


class VoiceChatClient:
    def __init__(
        self,
        base_url: str,
        capture: CaptureDevice,
        player: AudioPlayer,
        http: aiohttp.ClientSession | None = None,
        reset_delay: float = 2.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._capture = capture
        self._http = http
        self._owns_http = http is None
        self._reset_delay = reset_delay

        self.state = CallStateMachine()
        self.queue = AudioPlaybackQueue(
            player,
            on_start=self.state.playback_started,
            on_idle=self.state.playback_idle,
        )

        self.landing_url: Optional[str] = None
        self.last_response: Optional[str] = None
        self.last_action: Optional[str] = None
        self.last_apartment: Optional[dict[str, Any]] = None

        self._turn: Optional[asyncio.Task] = None
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    async def __aenter__(self) -> "VoiceChatClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def close(self) -> None:
        if self.state.call_state == CallState.ACTIVE:
            await self.end_call()
        if self._reset_handle is not None:
            self._reset_handle.cancel()
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None

    # ── Call lifecycle ─────────────────────────────────────────

    async def start_call(self) -> bool:
        """Acquire the mic, open a server session and play the greeting.

        On failure the call reverts to idle, ``state.error`` holds the
        user-facing message and the error is re-raised.
        """
        if not self.state.begin_connect():
            return False
        self.landing_url = None
        self.last_response = None

        session_id: Optional[str] = None
        try:
            await self._capture.open()
            async with self._session().post(f"{self._base_url}/session/start") as resp:
                if resp.status != 200:
                    raise VoiceChatError(f"Failed to start session (status {resp.status})")
                data = await resp.json()
            session_id = data["sessionId"]
        except CaptureError as e:
            await self._abort_connect(session_id, e.user_message)
            raise
        except (aiohttp.ClientError, VoiceChatError, KeyError, ValueError) as e:
            await self._abort_connect(session_id, f"Не удалось начать звонок: {e}")
            if isinstance(e, VoiceChatError):
                raise
            raise VoiceChatError(str(e)) from e

        self.state.connected(session_id)
        self.last_response = data.get("greeting")
        if data.get("audio"):
            self.queue.enqueue(base64.b64decode(data["audio"]))
            await self.queue.wait_idle()
        return True

    async def _abort_connect(self, session_id: Optional[str], message: str) -> None:
        log.error("Call failed to start: %s", message)
        self.state.fail_connect(message)
        await self._release_capture()
        if session_id:
            await self._post_end(session_id)

    async def end_call(self) -> Optional[dict[str, Any]]:
        """Hang up: stop streaming and playback, free the mic, close the session."""
        session_id = self.state.session_id
        if self.state.call_state != CallState.ACTIVE:
            return None

        if self._turn is not None and not self._turn.done():
            self._turn.cancel()
        self.queue.cancel()
        await self._release_capture()

        analytics = await self._post_end(session_id) if session_id else None
        self.state.end()
        self._schedule_reset()
        return analytics

    def _schedule_reset(self) -> None:
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self._reset_delay, self._auto_reset)

    def _auto_reset(self) -> None:
        self._reset_handle = None
        if self.state.reset():
            self.last_response = None

    async def _release_capture(self) -> None:
        try:
            await self._capture.close()
        except CaptureError as e:
            log.warning("Releasing capture device failed: %s", e)

    async def _post_end(self, session_id: str) -> Optional[dict[str, Any]]:
        try:
            async with self._session().post(
                f"{self._base_url}/session/end", json={"sessionId": session_id}
            ) as resp:
                data = await resp.json()
        except (aiohttp.ClientError, ValueError) as e:
            log.error("Error ending session: %s", e)
            return None
        return data.get("analytics") if isinstance(data, dict) else None

    # ── Turns ──────────────────────────────────────────────────

    async def start_recording(self) -> bool:
        if not self.state.begin_recording():
            return False
        self.queue.cancel()
        try:
            await self._capture.start()
        except CaptureError as e:
            self.state.finish_recording()
            self.state.error = e.user_message
            raise
        return True

    async def stop_recording(self) -> Optional[dict[str, Any]]:
        """Send the utterance and stream the reply. Returns the ``done`` payload.

        Recordings under ``MIN_RECORDING_BYTES`` are dropped as accidental
        taps. Returns None when nothing was sent or the call ended mid-turn.
        """
        session_id = self.state.session_id
        if self.state.speaking != SpeakingState.USER or not session_id:
            return None

        recording = await self._capture.stop()
        self.state.finish_recording()
        if recording.size < MIN_RECORDING_BYTES:
            log.info("Recording too short (%d bytes), ignored", recording.size)
            return None

        self.state.set_processing(True)
        self.last_response = None
        self.queue.cancel()

        self._turn = asyncio.ensure_future(self._run_turn(session_id, recording))
        await asyncio.wait({self._turn})
        if self._turn.cancelled():
            return None
        return self._turn.result()

    async def _run_turn(self, session_id: str, recording: Recording) -> Optional[dict[str, Any]]:
        form = aiohttp.FormData()
        form.add_field(
            "audio", recording.data,
            filename=recording.filename, content_type=recording.mime_type,
        )
        form.add_field("sessionId", session_id)

        done: Optional[dict[str, Any]] = None
        try:
            async with self._session().post(
                f"{self._base_url}/chat/voice-stream", data=form
            ) as resp:
                if resp.status != 200:
                    raise VoiceChatError(f"Failed to process voice (status {resp.status})")
                async for event in iter_sse_events(resp.content):
                    if event.event == "audio":
                        self.queue.enqueue(base64.b64decode(event.data))
                    elif event.event == "done":
                        done = json.loads(event.data)
                        self._apply_done(done)
                    elif event.event == "error":
                        log.warning("Phrase synthesis error: %s", event.data)
        except (aiohttp.ClientError, VoiceChatError, ValueError) as e:
            log.error("Error processing voice: %s", e)
            self.state.error = "Ошибка обработки голосового сообщения"
            self.queue.cancel()
            return None
        finally:
            self.state.set_processing(False)
        return done

    def _apply_done(self, done: dict[str, Any]) -> None:
        self.last_response = done.get("response", "")
        self.last_action = done.get("action")
        self.last_apartment = done.get("apartment")
        if done.get("landingUrl"):
            self.landing_url = done["landingUrl"]

    # ── Presentations ──────────────────────────────────────────

    async def send_presentation(self, apartment_id: str, phone_number: str) -> dict[str, Any]:
        try:
            async with self._session().post(
                f"{self._base_url}/send-presentation",
                json={"apartmentId": apartment_id, "phoneNumber": phone_number},
            ) as resp:
                if resp.status != 200:
                    raise VoiceChatError("Failed to send presentation")
                data = await resp.json()
        except (aiohttp.ClientError, VoiceChatError, ValueError) as e:
            log.error("Presentation request failed: %s", e)
            return {"success": False, "error": str(e)}
        return {"success": bool(data.get("success")), "error": data.get("error")}
