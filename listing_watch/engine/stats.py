"""Price-per-area statistics, recomputed from stored listings on every call."""

from __future__ import annotations

import statistics
from typing import Iterable

from ..records import ListingStats, SeenListing


def compute_stats(listings: Iterable[SeenListing]) -> ListingStats:
    values = sorted(
        listing.price_per_area for listing in listings if listing.price_per_area is not None
    )
    if not values:
        return ListingStats()
    return ListingStats(
        count=len(values),
        min=values[0],
        max=values[-1],
        mean=statistics.fmean(values),
        median=statistics.median(values),
    )


__all__ = ["compute_stats"]
