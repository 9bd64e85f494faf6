"""Pydantic models tracking one caller's search through the conversation."""

from __future__ import annotations

import time
from typing import Literal, Optional

from pydantic import BaseModel, Field

_PARAM_FIELDS = (
    "district",
    "price_min",
    "price_max",
    "area_min",
    "area_max",
    "floor_min",
    "floor_max",
)


class SearchParams(BaseModel):
    """Sparse filter. Every field is independently optional.

    Fields are only ever overwritten by explicit new values; a missing or
    null value in a patch never clears what is already set.
    """

    district: Optional[str] = None
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    area_min: Optional[int] = None
    area_max: Optional[int] = None
    floor_min: Optional[int] = None
    floor_max: Optional[int] = None

    def merged(self, patch: "SearchParams | None") -> "SearchParams":
        """Return a copy with the patch's set fields written over ours."""
        if patch is None:
            return self.model_copy()
        return self.model_copy(update=patch.set_fields())

    def set_fields(self) -> dict:
        return {k: v for k, v in self.model_dump().items() if v is not None}

    def is_empty(self) -> bool:
        return not self.set_fields()


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class DialogueContext(BaseModel):
    """Mutable per-session dialogue state.

    Fields are populated progressively as the caller narrows the search:
    parameters merge in, shown listings append (never twice), and a listing
    becomes ``selected_listing`` only on a confirmed interest.
    """

    session_id: str
    params: SearchParams = Field(default_factory=SearchParams)
    shown_listings: list[str] = []
    selected_listing: Optional[str] = None
    message_history: list[ChatMessage] = []
    started_at: float = Field(default_factory=time.time)

    @property
    def last_shown(self) -> Optional[str]:
        return self.shown_listings[-1] if self.shown_listings else None

    def mark_shown(self, listing_id: str) -> bool:
        """Append to the shown history. Returns False if it was already there."""
        if listing_id in self.shown_listings:
            return False
        self.shown_listings.append(listing_id)
        return True

    def add_message(self, role: str, content: str) -> None:
        self.message_history.append(ChatMessage(role=role, content=content))

    def recent_history(self, window: int) -> list[ChatMessage]:
        if window <= 0:
            return []
        return self.message_history[-window:]
