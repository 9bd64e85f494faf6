"""Phrase segmentation and ordered streaming synthesis."""

from .coordinator import AudioEvent, ErrorEvent, PhraseEvent, SynthesisCoordinator
from .segmenter import segment_phrases
from .sse import format_sse

__all__ = [
    "AudioEvent",
    "ErrorEvent",
    "PhraseEvent",
    "SynthesisCoordinator",
    "format_sse",
    "segment_phrases",
]
