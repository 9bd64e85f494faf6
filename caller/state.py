"""Call lifecycle and turn-level speaking state, as seen by the caller.

    idle ──begin_connect──▶ connecting ──connected──▶ active ──end──▶ ended
     ▲                          │                                      │
     └────────fail_connect──────┘                                      │
     └──────────────────────────────reset (after a delay)──────────────┘

While ``active`` the speaking sub-state is exactly one of idle / user /
assistant. A transition whose preconditions do not hold is a no-op that
returns False; it never raises.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

log = logging.getLogger("caller.state")


class CallState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDED = "ended"


class SpeakingState(str, Enum):
    IDLE = "idle"
    USER = "user"
    ASSISTANT = "assistant"


class CallStateMachine:
    def __init__(self) -> None:
        self.call_state = CallState.IDLE
        self.speaking = SpeakingState.IDLE
        self.processing = False
        self.session_id: Optional[str] = None
        self.error: Optional[str] = None

    def _move(self, expected: CallState, target: CallState) -> bool:
        if self.call_state != expected:
            log.debug("Ignored %s → %s (currently %s)", expected.value, target.value,
                      self.call_state.value)
            return False
        log.info("Call %s → %s", self.call_state.value, target.value)
        self.call_state = target
        return True

    # ── Call lifecycle ─────────────────────────────────────────

    def begin_connect(self) -> bool:
        if not self._move(CallState.IDLE, CallState.CONNECTING):
            return False
        self.error = None
        return True

    def connected(self, session_id: str) -> bool:
        if not self._move(CallState.CONNECTING, CallState.ACTIVE):
            return False
        self.session_id = session_id
        return True

    def fail_connect(self, message: str) -> bool:
        if not self._move(CallState.CONNECTING, CallState.IDLE):
            return False
        self.error = message
        self.session_id = None
        return True

    def end(self) -> bool:
        if not self._move(CallState.ACTIVE, CallState.ENDED):
            return False
        self.speaking = SpeakingState.IDLE
        self.processing = False
        self.session_id = None
        return True

    def reset(self) -> bool:
        return self._move(CallState.ENDED, CallState.IDLE)

    # ── Speaking sub-state ─────────────────────────────────────

    @property
    def can_record(self) -> bool:
        return (
            self.call_state == CallState.ACTIVE
            and self.speaking == SpeakingState.IDLE
            and not self.processing
        )

    def begin_recording(self) -> bool:
        if not self.can_record:
            return False
        self.speaking = SpeakingState.USER
        return True

    def finish_recording(self) -> bool:
        if self.speaking != SpeakingState.USER:
            return False
        self.speaking = SpeakingState.IDLE
        return True

    def set_processing(self, processing: bool) -> None:
        self.processing = processing

    def playback_started(self) -> bool:
        if self.call_state != CallState.ACTIVE or self.speaking == SpeakingState.USER:
            return False
        self.speaking = SpeakingState.ASSISTANT
        return True

    def playback_idle(self) -> bool:
        if self.speaking != SpeakingState.ASSISTANT:
            return False
        self.speaking = SpeakingState.IDLE
        return True
