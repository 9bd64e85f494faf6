"""Tests for server-side sessions, the registry and analytics recording."""

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from concierge.analytics import AnalyticsRecorder
from concierge.errors import SessionNotFoundError
from concierge.models import DialogueContext, SearchParams
from concierge.session import SessionRegistry, SessionState, redact_pii


class TestRedactPii:
    def test_long_value(self):
        assert redact_pii("+79991234567") == "+79***67"

    def test_short_value(self):
        assert redact_pii("123") == "***"
        assert redact_pii("") == "***"


class TestSessionRegistry:
    def test_create_is_connecting_with_unique_ids(self):
        registry = SessionRegistry()
        a, b = registry.create(), registry.create()
        assert a.state == SessionState.CONNECTING
        assert a.id != b.id
        assert len(registry) == 2

    def test_activate(self):
        registry = SessionRegistry()
        session = registry.create()
        registry.activate(session.id)
        assert session.is_active

    def test_require_unknown_raises(self):
        with pytest.raises(SessionNotFoundError):
            SessionRegistry().require("nope")

    def test_end_removes_and_cancels(self):
        ended = []
        registry = SessionRegistry(on_end=ended.append)
        session = registry.create()

        assert registry.end(session.id) is session
        assert session.state == SessionState.ENDED
        assert session.cancel.is_set()
        assert session.id not in registry
        assert ended == [session]

    def test_end_unknown_is_noop(self):
        assert SessionRegistry().end("nope") is None

    def test_end_hook_failure_is_contained(self):
        def boom(session):
            raise RuntimeError("hook failed")

        registry = SessionRegistry(on_end=boom)
        session = registry.create()
        registry.end(session.id)
        assert session.id not in registry

    def test_sweep_evicts_idle_sessions(self):
        registry = SessionRegistry(idle_timeout=60)
        stale = registry.create()
        fresh = registry.create()
        stale.last_activity = 1000.0
        fresh.last_activity = 1090.0

        assert registry.sweep_idle(now=1100.0) == [stale.id]
        assert stale.id not in registry
        assert fresh.id in registry

    @pytest.mark.asyncio
    async def test_sweep_skips_running_turns(self):
        registry = SessionRegistry(idle_timeout=60)
        session = registry.create()
        session.last_activity = 0.0
        async with session.turn_lock:
            assert registry.sweep_idle(now=1000.0) == []
        assert registry.sweep_idle(now=1000.0) == [session.id]

    def test_to_dict(self):
        session = SessionRegistry().create()
        session.context.mark_shown("apt-001")
        d = session.to_dict()
        assert d["state"] == "connecting"
        assert d["shown"] == ["apt-001"]


class TestAnalyticsRecorder:
    def test_lifecycle(self):
        recorder = AnalyticsRecorder()
        recorder.start_session("s1", started_at=100.0)

        context = DialogueContext(session_id="s1", params=SearchParams(district="JBR"))
        context.mark_shown("apt-007")
        context.mark_shown("apt-008")
        context.selected_listing = "apt-008"
        recorder.update(context)
        recorder.mark_landing_generated("s1", "apt-008")

        record = recorder.end_session("s1", ended_at=130.5)
        assert record.duration == 30.5
        assert record.apartments_shown == 2
        assert record.selected_apartment == "apt-008"
        assert record.landing_generated is True
        assert record.params.district == "JBR"

    def test_end_is_idempotent(self):
        recorder = AnalyticsRecorder()
        recorder.start_session("s1", started_at=0.0)
        recorder.end_session("s1", ended_at=5.0)
        assert recorder.end_session("s1", ended_at=50.0).duration == 5.0

    def test_unknown_session_is_ignored(self):
        recorder = AnalyticsRecorder()
        recorder.update(DialogueContext(session_id="ghost"))
        recorder.mark_landing_generated("ghost", "apt-001")
        assert recorder.end_session("ghost") is None
        assert recorder.all() == []

    def test_failures_are_swallowed(self):
        recorder = AnalyticsRecorder()
        recorder.start_session("s1")
        assert recorder.update(None) is None
        assert recorder.get("s1") is not None

    def test_wire_shape_is_camel_case(self):
        recorder = AnalyticsRecorder()
        recorder.start_session("s1", started_at=1.0)
        data = recorder.get("s1").model_dump(by_alias=True)
        assert {"sessionId", "startTime", "apartmentsShown", "landingGenerated"} <= set(data)
