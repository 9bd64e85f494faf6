"""Caller-side voice chat: call state, ordered playback, HTTP/SSE client."""

from .client import VoiceChatClient, VoiceChatError
from .devices import AudioPlayer, CaptureDevice, CaptureError, CaptureErrorKind, Recording
from .playback import AudioPlaybackQueue
from .state import CallState, CallStateMachine, SpeakingState

__all__ = [
    "AudioPlaybackQueue",
    "AudioPlayer",
    "CallState",
    "CallStateMachine",
    "CaptureDevice",
    "CaptureError",
    "CaptureErrorKind",
    "Recording",
    "SpeakingState",
    "VoiceChatClient",
    "VoiceChatError",
]
