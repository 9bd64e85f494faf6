"""Ordered, single-flight playback of streamed phrase audio.

Clips play strictly in enqueue order, one at a time. ``enqueue``, the
completion callback and ``cancel`` never await, so under asyncio each
runs to completion without interleaving. Every started clip is tagged
with the current generation; ``cancel`` bumps the generation, so a clip
finishing after a cancel cannot advance the (already cleared) queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Optional

from caller.devices import AudioPlayer

log = logging.getLogger("caller.playback")


class AudioPlaybackQueue:
    def __init__(
        self,
        player: AudioPlayer,
        on_start: Optional[Callable[[], object]] = None,
        on_idle: Optional[Callable[[], object]] = None,
    ) -> None:
        self._player = player
        self._on_start = on_start
        self._on_idle = on_idle

        self._pending: deque[bytes] = deque()
        self._playing = False
        self._generation = 0
        self._current: Optional[asyncio.Future] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def pending(self) -> int:
        return len(self._pending)

    def enqueue(self, audio: bytes) -> None:
        """Append a clip; start playing immediately if nothing is playing."""
        self._pending.append(audio)
        if self._playing:
            return
        self._playing = True
        self._idle.clear()
        if self._on_start is not None:
            self._on_start()
        self._play_next()

    def cancel(self) -> None:
        """Stop the audible clip, drop everything queued, go idle."""
        self._generation += 1
        dropped = len(self._pending)
        self._pending.clear()

        was_playing = self._playing
        self._playing = False
        if self._current is not None and not self._current.done():
            self._player.stop()
            self._current.cancel()
        self._current = None
        self._idle.set()

        if was_playing:
            log.info("Playback cancelled, %d queued clips dropped", dropped)
            if self._on_idle is not None:
                self._on_idle()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def _play_next(self) -> None:
        if not self._pending:
            self._playing = False
            self._current = None
            self._idle.set()
            if self._on_idle is not None:
                self._on_idle()
            return

        audio = self._pending.popleft()
        generation = self._generation
        self._current = asyncio.ensure_future(self._player.play(audio))
        self._current.add_done_callback(lambda f: self._clip_finished(f, generation))

    def _clip_finished(self, future: asyncio.Future, generation: int) -> None:
        if not future.cancelled() and future.exception() is not None:
            log.warning("Clip playback failed: %s", future.exception())
        if generation != self._generation:
            return
        self._play_next()
