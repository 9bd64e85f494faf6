"""Capture / playback device interfaces for the caller side.

Concrete devices wrap whatever the platform offers (a browser bridge, a
sound card, a test double). The client only needs to start and stop a
recording and to play one encoded clip at a time.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


@dataclass
class Recording:
    """One recorded utterance, already encoded (webm/opus by default)."""

    data: bytes
    mime_type: str = "audio/webm"
    filename: str = "recording.webm"

    @property
    def size(self) -> int:
        return len(self.data)


class CaptureErrorKind(str, Enum):
    NO_MEDIA_DEVICES = "no_media_devices"
    PERMISSION_DENIED = "permission_denied"
    NO_MIC_FOUND = "no_mic_found"


_USER_MESSAGES = {
    CaptureErrorKind.NO_MEDIA_DEVICES: (
        "Браузер не поддерживает доступ к микрофону или требуется HTTPS."
    ),
    CaptureErrorKind.PERMISSION_DENIED: (
        "Доступ к микрофону запрещён. Проверьте настройки браузера."
    ),
    CaptureErrorKind.NO_MIC_FOUND: "Микрофон не найден.",
}


class CaptureError(Exception):
    """The microphone could not be acquired. Terminal for the call."""

    def __init__(self, kind: CaptureErrorKind) -> None:
        self.kind = CaptureErrorKind(kind)
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self.kind]


class CaptureDevice(ABC):
    """Microphone access."""

    @abstractmethod
    async def open(self) -> None:
        """Acquire the device.

        Raises:
            CaptureError: no capture capability, permission denied, or
                no microphone present.
        """

    @abstractmethod
    async def start(self) -> None:
        """Begin recording a new utterance."""

    @abstractmethod
    async def stop(self) -> Recording:
        """Stop recording and return the encoded utterance."""

    @abstractmethod
    async def close(self) -> None:
        """Release the device. Safe to call multiple times."""


class AudioPlayer(ABC):
    """Plays one encoded clip (mp3) at a time."""

    @abstractmethod
    async def play(self, audio: bytes) -> None:
        """Play a clip and return once it has finished.

        Raising means playback failed; the queue moves on to the next clip.
        """

    @abstractmethod
    def stop(self) -> None:
        """Silence whatever is audible right now."""
