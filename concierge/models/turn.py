"""Pydantic models for turn outcomes and the wire-level summary event."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from listings.schema import Listing

from .context import SearchParams


class Action(str, Enum):
    NONE = "none"
    SEARCH = "search"
    NEXT = "next"
    CONFIRM_INTEREST = "confirm_interest"
    END = "end"


class TurnResult(BaseModel):
    """What the dialogue policy decided for one caller utterance."""

    response: str
    params_update: SearchParams = Field(default_factory=SearchParams)
    action: Action = Action.NONE
    listing: Optional[Listing] = None
    rule: str = "llm"  # which resolver rule fired, or "llm" / "fallback"


class DoneEvent(BaseModel):
    """Terminal summary sent once after every phrase of a turn."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    action: Action
    apartment: Optional[Listing] = None
    landing_url: Optional[str] = Field(default=None, alias="landingUrl")
    params: SearchParams

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
