"""Data models for the dialogue layer."""

from .analytics import SessionAnalytics
from .context import ChatMessage, DialogueContext, SearchParams
from .turn import Action, DoneEvent, TurnResult

__all__ = [
    "Action",
    "ChatMessage",
    "DialogueContext",
    "DoneEvent",
    "SearchParams",
    "SessionAnalytics",
    "TurnResult",
]
