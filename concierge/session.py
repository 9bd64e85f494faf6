"""Server-side call sessions and the registry that owns them.

One Session per call. Its DialogueContext is only mutated by the turn
currently holding ``turn_lock``; a second request for the same session
while a turn is running is refused rather than queued.

Typical lifecycle::

    session = registry.create()          # connecting
    registry.activate(session.id)        # active, after the greeting
    async with session.turn_lock:
        ...                              # one turn at a time
    registry.end(session.id)             # ended, cancel event set, removed
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from enum import Enum
from typing import Any, Callable, Optional

from concierge.config import settings
from concierge.errors import SessionNotFoundError
from concierge.models import DialogueContext

log = logging.getLogger("concierge.session")


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDED = "ended"


class Session:
    def __init__(self, session_id: str) -> None:
        self.id = session_id
        self.created_at = time.time()
        self.last_activity = self.created_at
        self.state = SessionState.CONNECTING
        self.context = DialogueContext(session_id=session_id, started_at=self.created_at)

        self.turn_lock = asyncio.Lock()
        # Set on end; in-flight synthesis stops and late audio is dropped
        self.cancel = asyncio.Event()

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def turn_in_progress(self) -> bool:
        return self.turn_lock.locked()

    def touch(self) -> None:
        self.last_activity = time.time()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.id,
            "state": self.state.value,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "shown": list(self.context.shown_listings),
            "params": self.context.params.set_fields(),
        }


class SessionRegistry:
    """Process-owned map of live sessions.

    ``on_end`` is called with every session leaving the registry, whether
    ended explicitly or evicted for inactivity.
    """

    def __init__(
        self,
        idle_timeout: float | None = None,
        on_end: Optional[Callable[[Session], None]] = None,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._idle_timeout = (
            idle_timeout if idle_timeout is not None else settings.session_idle_timeout
        )
        self._on_end = on_end

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def all(self) -> list[Session]:
        return list(self._sessions.values())

    def create(self) -> Session:
        session_id = secrets.token_urlsafe(18)
        while session_id in self._sessions:
            session_id = secrets.token_urlsafe(18)
        session = Session(session_id)
        self._sessions[session_id] = session
        log.info("Session created: %s", session_id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id) if session_id else None
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def activate(self, session_id: str) -> Session:
        """connecting → active. Other states are left alone."""
        session = self.require(session_id)
        if session.state == SessionState.CONNECTING:
            session.state = SessionState.ACTIVE
            session.touch()
            log.info("Session active: %s", session_id)
        return session

    def end(self, session_id: str) -> Optional[Session]:
        """Remove a session and stop any synthesis still running for it."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        session.state = SessionState.ENDED
        session.cancel.set()
        log.info("Session ended: %s", session_id)
        if self._on_end is not None:
            try:
                self._on_end(session)
            except Exception as e:
                log.error("Session end hook failed for %s: %s", session_id, e)
        return session

    def sweep_idle(self, max_idle: float | None = None, now: float | None = None) -> list[str]:
        """End sessions idle longer than ``max_idle`` seconds. Returns their ids."""
        max_idle = max_idle if max_idle is not None else self._idle_timeout
        now = now if now is not None else time.time()
        stale = [
            s.id for s in self._sessions.values()
            if not s.turn_in_progress and now - s.last_activity > max_idle
        ]
        for session_id in stale:
            log.info("Evicting idle session %s", session_id)
            self.end(session_id)
        return stale

    async def run_sweeper(self, interval: float | None = None) -> None:
        """Background loop for :meth:`sweep_idle`. Cancel the task to stop it."""
        interval = interval if interval is not None else settings.session_sweep_interval
        while True:
            await asyncio.sleep(interval)
            self.sweep_idle()
