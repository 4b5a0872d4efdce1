"""Value types flowing through the scan pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


def price_per_area(price: float | None, area: float | None) -> float | None:
    """Return price / area, or ``None`` when either side is missing or area is not positive."""

    if price is None or area is None or area <= 0:
        return None
    return price / area


@dataclass(slots=True)
class ListingRecord:
    """Normalised listing extracted from a search-results page."""

    token: str
    price: float | None = None
    area: float | None = None
    address: str = ""
    rooms: float | None = None
    property_type: str = ""
    ad_type: str = ""
    link: str = ""

    @property
    def price_per_area(self) -> float | None:
        return price_per_area(self.price, self.area)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["price_per_area"] = self.price_per_area
        return payload


@dataclass(slots=True)
class SeenListing:
    """Listing as first recorded for a target; never updated afterwards."""

    target_id: int
    token: str
    price: float | None
    area: float | None
    price_per_area: float | None
    address: str
    rooms: float | None
    property_type: str
    first_seen_at: str
    link: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ListingStats:
    """Aggregate price-per-area figures for one target."""

    count: int = 0
    min: float | None = None
    max: float | None = None
    mean: float | None = None
    median: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScanState(str, Enum):
    """Stages a single target passes through during a scan."""

    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DEDUPLICATING = "deduplicating"
    PERSISTING = "persisting"
    FILTERING = "filtering"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ScanOutcome:
    """Result of scanning one target in one cycle. Never persisted."""

    target_id: int
    target_name: str
    state: ScanState = ScanState.FETCHING
    total_scraped: int = 0
    new_found: int = 0
    notified: int = 0
    notification_status: str = "skipped"
    notified_listings: list[ListingRecord] = field(default_factory=list)
    below_threshold: list[SeenListing] = field(default_factory=list)
    stats: ListingStats = field(default_factory=ListingStats)
    error: str | None = None
    failure_kind: str | None = None
    # stage that was running when the scan failed
    failed_at: ScanState | None = None

    @property
    def ok(self) -> bool:
        return self.state is ScanState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.target_id,
            "name": self.target_name,
            "state": self.state.value,
            "total_scraped": self.total_scraped,
            "new_found": self.new_found,
            "notified": self.notified,
            "notification_status": self.notification_status,
            "notified_listings": [record.to_dict() for record in self.notified_listings],
            "below_threshold": [listing.to_dict() for listing in self.below_threshold],
            "stats": self.stats.to_dict(),
            "error": self.error,
            "failure_kind": self.failure_kind,
            "failed_at": self.failed_at.value if self.failed_at else None,
        }


__all__ = [
    "ListingRecord",
    "ListingStats",
    "ScanOutcome",
    "ScanState",
    "SeenListing",
    "price_per_area",
]
