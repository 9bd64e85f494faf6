"""Pydantic model for apartment listings with voice-friendly text generation."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from listings.voice import (
    localize_for_voice,
    ordinal_floor,
    price_for_voice,
    square_meters_form,
)


class Listing(BaseModel):
    """One catalog record. Never mutated by the dialogue pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    district: str
    area: int  # m²
    floor: int
    price: int  # AED
    description: str
    images: list[str] = []
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    features: list[str] = []

    def to_voice_text(self) -> str:
        """Spoken summary: district, area, floor and price, in Russian."""
        parts = [
            self.district,
            f"{self.area} {square_meters_form(self.area)}",
            ordinal_floor(self.floor),
            price_for_voice(self.price),
        ]
        return localize_for_voice(", ".join(parts))

    def to_short_text(self) -> str:
        """Compact description used inside language-model prompts."""
        millions = self.price / 1_000_000
        return f"{self.district}, {self.area} м², {self.floor} этаж, {millions:.1f} млн AED"
