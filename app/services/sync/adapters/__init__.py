"""Adapters for external data sources.

Available adapters:
- listing_adapter: Listing source boundary (ListingSource protocol + loader)
"""
from app.services.sync.adapters.listing_adapter import (
    ListingSource,
    get_listing_source,
    load_listing_source,
)

__all__ = [
    "ListingSource",
    "get_listing_source",
    "load_listing_source",
]
