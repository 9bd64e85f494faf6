"""External service abstractions. Concrete backends are imported lazily."""

from .base import (
    CompletionClient,
    DeliveryResult,
    DocumentRenderer,
    MessageDelivery,
    SpeechSynthesizer,
    Transcriber,
)

__all__ = [
    "CompletionClient",
    "DeliveryResult",
    "DocumentRenderer",
    "MessageDelivery",
    "SpeechSynthesizer",
    "Transcriber",
]
