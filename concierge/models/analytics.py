"""Per-session analytics summary."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .context import SearchParams


class SessionAnalytics(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    params: SearchParams = Field(default_factory=SearchParams)
    apartments_shown: int = 0
    selected_apartment: Optional[str] = None
    landing_generated: bool = False
