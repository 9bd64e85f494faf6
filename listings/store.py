"""Read-only listing catalog with parameter filtering and price ranking."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from listings.schema import Listing

if TYPE_CHECKING:
    from concierge.models.context import SearchParams

log = logging.getLogger("listings.store")

DEFAULT_CATALOG = Path(__file__).parent / "sample_data" / "apartments.json"


def district_matches(query: str, district: str) -> bool:
    """Case-insensitive substring match in either direction."""
    q = query.lower()
    d = district.lower()
    return q in d or d in q


class ListingStore:
    """Immutable in-memory catalog.

    Usage::

        store = ListingStore.from_json()
        results = store.search(params, exclude_ids=context.shown_listings)
        candidate = results[0] if results else None
    """

    def __init__(self, listings: Iterable[Listing]) -> None:
        self._listings: tuple[Listing, ...] = tuple(listings)
        self._by_id: dict[str, Listing] = {l.id: l for l in self._listings}
        if len(self._by_id) != len(self._listings):
            raise ValueError("Listing ids must be unique")

    @classmethod
    def from_json(cls, path: str | Path | None = None) -> "ListingStore":
        """Load the catalog from a JSON array of listing records."""
        path = Path(path) if path else DEFAULT_CATALOG
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        store = cls(Listing(**item) for item in raw)
        log.info("Loaded %d listings from %s", len(store), path)
        return store

    def __len__(self) -> int:
        return len(self._listings)

    def all(self) -> tuple[Listing, ...]:
        return self._listings

    def get(self, listing_id: str) -> Optional[Listing]:
        return self._by_id.get(listing_id)

    def search(self, params: SearchParams, exclude_ids: Iterable[str] = ()) -> list[Listing]:
        """Filter by every set bound (inclusive), skipping excluded ids.

        When both price bounds are set, results are ordered by distance
        from the middle of the range. ``sorted`` is stable, so ties keep
        catalog order; without a full price range catalog order is kept.
        """
        excluded = set(exclude_ids)
        results = [
            listing for listing in self._listings
            if listing.id not in excluded and self._matches(listing, params)
        ]

        if params.price_min is not None and params.price_max is not None:
            target = (params.price_min + params.price_max) / 2
            results = sorted(results, key=lambda l: abs(l.price - target))

        return results

    @staticmethod
    def _matches(listing: Listing, params: SearchParams) -> bool:
        if params.district and not district_matches(params.district, listing.district):
            return False

        bounds = (
            (listing.price, params.price_min, params.price_max),
            (listing.area, params.area_min, params.area_max),
            (listing.floor, params.floor_min, params.floor_max),
        )
        for value, low, high in bounds:
            if low is not None and value < low:
                return False
            if high is not None and value > high:
                return False
        return True

    def districts(self) -> list[str]:
        """Distinct districts in catalog order."""
        return list(dict.fromkeys(l.district for l in self._listings))

    def district_stats(self, district: str) -> Optional[dict[str, int]]:
        """Price range and listing count for a district, or None if unknown."""
        matching = [l for l in self._listings if district_matches(district, l.district)]
        if not matching:
            return None
        prices = [l.price for l in matching]
        return {
            "min_price": min(prices),
            "max_price": max(prices),
            "count": len(matching),
        }
