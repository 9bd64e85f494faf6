"""Abstract base classes for the external services the pipeline talks to.

Each backend (OpenAI, ElevenLabs, Playwright, Green API, ...) implements
one of these ABCs. Tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from listings.schema import Listing


@dataclass
class DeliveryResult:
    """Outcome of a message-delivery attempt."""

    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict = {"success": self.success}
        if self.error:
            d["error"] = self.error
        return d


class Transcriber(ABC):
    """Speech-to-text backend."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str) -> str:
        """Return the recognised text for one recorded utterance.

        Raises:
            TranscriptionError: the service failed or returned no result.
        """


class CompletionClient(ABC):
    """Chat-completion backend constrained to JSON object output."""

    @abstractmethod
    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Return the raw completion text for a message list.

        Raises:
            CompletionError: the service failed.
        """

    @abstractmethod
    def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        """Yield completion tokens as they arrive.

        Raises:
            CompletionError: the stream could not be opened or broke off.
        """


class SpeechSynthesizer(ABC):
    """Text-to-speech backend."""

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Return encoded audio (mp3) for the text.

        Raises:
            SynthesisError: or one of its subclasses.
        """


class DocumentRenderer(ABC):
    """Renders a listing presentation to a binary document."""

    @abstractmethod
    async def render(self, listing: Listing) -> bytes:
        """Return PDF bytes for the listing.

        Raises:
            RenderError: rendering failed.
        """


class MessageDelivery(ABC):
    """Delivers files / messages to a phone number."""

    @abstractmethod
    async def send_file(
        self, phone_number: str, file_url: str, caption: str = ""
    ) -> DeliveryResult:
        """Send a publicly reachable file. Never raises."""

    @abstractmethod
    async def send_message(self, phone_number: str, message: str) -> DeliveryResult:
        """Send a text message. Never raises."""
