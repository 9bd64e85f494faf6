"""Typed error taxonomy for the voice pipeline.

Only session-not-found is terminal for a call. Everything raised from the
dialogue path is caught and downgraded to a templated utterance; synthesis
errors become per-phrase ``error`` events; delivery and rendering errors
are returned as ``{"success": false, "error": ...}``.
"""

from __future__ import annotations


class ConciergeError(Exception):
    """Base class for all pipeline errors."""


class SessionNotFoundError(ConciergeError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id!r}")
        self.session_id = session_id


class TranscriptionError(ConciergeError):
    """The transcription service failed; the turn is aborted unchanged."""


class CompletionError(ConciergeError):
    """The language-model service failed or returned nothing usable."""


class SynthesisError(ConciergeError):
    """Speech synthesis failed for one phrase.

    ``kind`` is one of ``api`` (provider rejected the request),
    ``timeout``, ``transport`` or ``blocked`` (see subclass).
    """

    kind = "api"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SynthesisBlockedError(SynthesisError):
    """The provider answered with an HTML page instead of audio.

    This is infrastructure blocking (CDN / firewall), not an API-level
    rejection, and is reported separately so the two can be told apart.
    """

    kind = "blocked"


class SynthesisTimeoutError(SynthesisError):
    kind = "timeout"


class SynthesisTransportError(SynthesisError):
    kind = "transport"


class RenderError(ConciergeError):
    """Document rendering failed."""


class DeliveryError(ConciergeError):
    """Message delivery failed."""
