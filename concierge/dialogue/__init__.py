"""Intent resolution and dialogue policy."""

from .patterns import IntentPatterns, load_patterns
from .policy import CompletionPayload, DialoguePolicy, apply_turn, parse_completion
from .resolver import IntentResolver

__all__ = [
    "CompletionPayload",
    "DialoguePolicy",
    "IntentPatterns",
    "IntentResolver",
    "apply_turn",
    "load_patterns",
    "parse_completion",
]
