"""In-memory session analytics side-channel.

Every public method is fire-and-forget: a failure is logged and
swallowed so analytics can never break a turn.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Optional

from concierge.models import DialogueContext, SessionAnalytics

log = logging.getLogger("concierge.analytics")


def _swallow(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception as e:
            log.error("Analytics %s failed: %s", method.__name__, e)
            return None

    return wrapper


class AnalyticsRecorder:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionAnalytics] = {}

    @_swallow
    def start_session(self, session_id: str, started_at: float | None = None) -> None:
        self._sessions[session_id] = SessionAnalytics(
            session_id=session_id,
            start_time=started_at if started_at is not None else time.time(),
        )
        log.info("Analytics started for %s", session_id)

    @_swallow
    def update(self, context: DialogueContext) -> None:
        record = self._sessions.get(context.session_id)
        if record is None:
            return
        record.params = context.params.model_copy()
        record.apartments_shown = len(context.shown_listings)
        if context.selected_listing:
            record.selected_apartment = context.selected_listing

    @_swallow
    def mark_landing_generated(self, session_id: str, listing_id: str) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            return
        record.landing_generated = True
        record.selected_apartment = listing_id
        log.info("Landing generated: %s → %s", session_id, listing_id)

    @_swallow
    def end_session(self, session_id: str, ended_at: float | None = None) -> Optional[SessionAnalytics]:
        record = self._sessions.get(session_id)
        if record is None:
            return None
        if record.end_time is None:
            record.end_time = ended_at if ended_at is not None else time.time()
            record.duration = round(record.end_time - record.start_time, 3)
            log.info(
                "Analytics for %s: %d shown, selected=%s, %.1fs",
                session_id, record.apartments_shown, record.selected_apartment, record.duration,
            )
        return record

    def get(self, session_id: str) -> Optional[SessionAnalytics]:
        return self._sessions.get(session_id)

    def all(self) -> list[SessionAnalytics]:
        return list(self._sessions.values())
