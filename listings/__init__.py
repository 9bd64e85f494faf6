"""Apartment catalog: listing schema and read-only store."""

from .schema import Listing
from .store import ListingStore

__all__ = ["Listing", "ListingStore"]
