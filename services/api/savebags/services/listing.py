"""Consumer listing assembly.

Merges the remote merchant list with the local overlay (local wins on id
collisions), keeps only listable merchants, annotates distances from the
consumer's coordinate, then applies filters and sorting.

Visibility:
- active and verified            -> standard prominence, "verified" badge
- active, no verification data   -> reduced prominence, "pending" badge
- everything else                -> excluded
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging

from savebags.schemas.listing import ListingEntry
from savebags.schemas.merchant import Coordinate, Merchant
from savebags.services.errors import RemoteUnavailable
from savebags.services.geo import haversine_km
from savebags.services.merchants import discount_percentage
from savebags.stores.local_cache import LocalCache, load_local_overlay, merchant_record
from savebags.stores.remote import RemoteStore

logger = logging.getLogger("uvicorn.error")

NEW_MERCHANT_WINDOW = timedelta(days=7)
SORT_KEYS = ("distance", "price", "rating", "savings")


def _entry(merchant: Merchant, now: datetime) -> ListingEntry | None:
    if not merchant.is_active:
        return None
    if merchant.verified is True:
        prominence, badge = "standard", "verified"
    elif merchant.verified is None:
        prominence, badge = "reduced", "pending"
    else:
        return None
    is_new = merchant.created_at is not None and now - merchant.created_at <= NEW_MERCHANT_WINDOW
    return ListingEntry(
        merchant=merchant,
        distance=merchant.distance,
        prominence=prominence,
        badge=badge,
        discount=discount_percentage(merchant.original_price, merchant.save_price),
        is_new=is_new,
    )


def build_listing(
    remote_merchants: list[Merchant],
    local_overlay: list[Merchant],
    *,
    now: datetime | None = None,
) -> list[ListingEntry]:
    """Dedup by str(id), local record wins, then drop unlistable merchants.

    Remote order is kept; local-only merchants follow in overlay order.
    """
    now = now or datetime.now(timezone.utc)
    merged: dict[str, Merchant] = {}
    for merchant in remote_merchants:
        merged[str(merchant.id)] = merchant
    for merchant in local_overlay:
        merged[str(merchant.id)] = merchant

    entries: list[ListingEntry] = []
    for merchant in merged.values():
        entry = _entry(merchant, now)
        if entry is not None:
            entries.append(entry)
    return entries


def annotate_distances(entries: list[ListingEntry], coordinate: Coordinate | None) -> list[ListingEntry]:
    """Recompute distances from `coordinate`; keep stored distances without one."""
    annotated = []
    for entry in entries:
        location = entry.merchant.location
        if coordinate is not None and location is not None:
            distance = haversine_km(coordinate, location)
        else:
            distance = entry.merchant.distance
        annotated.append(entry.model_copy(update={"distance": distance}))
    return annotated


@dataclass
class ListingFilters:
    search: str = ""
    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    dietary: list[str] = field(default_factory=list)
    favorites: set[str] | None = None
    pickup_from: str | None = None
    pickup_until: str | None = None
    sort: str = "distance"


def _matches(entry: ListingEntry, filters: ListingFilters) -> bool:
    merchant = entry.merchant
    if filters.search:
        term = filters.search.strip().lower()
        if term not in merchant.name.lower() and term not in merchant.type.lower():
            return False
    if filters.category and filters.category != "all" and merchant.category != filters.category:
        return False
    if filters.min_price is not None and merchant.save_price < filters.min_price:
        return False
    if filters.max_price is not None and merchant.save_price > filters.max_price:
        return False
    if any(tag not in merchant.dietary for tag in filters.dietary):
        return False
    if filters.favorites is not None and merchant.id not in filters.favorites:
        return False
    # HH:MM strings compare correctly as text
    if filters.pickup_from and merchant.pickup.end <= filters.pickup_from:
        return False
    if filters.pickup_until and merchant.pickup.start >= filters.pickup_until:
        return False
    return True


def _sort_key(sort: str) -> Callable[[ListingEntry], tuple]:
    if sort == "price":
        return lambda e: (e.merchant.save_price,)
    if sort == "rating":
        return lambda e: (-e.merchant.rating,)
    if sort == "savings":
        return lambda e: (-e.discount,)
    return lambda e: (e.distance is None, e.distance or 0.0)


def filter_listing(entries: list[ListingEntry], filters: ListingFilters) -> list[ListingEntry]:
    """Apply filters, then sort. Standard-prominence entries stay ahead of reduced ones."""
    selected = [entry for entry in entries if _matches(entry, filters)]
    key = _sort_key(filters.sort)
    return sorted(selected, key=lambda e: (e.prominence != "standard", *key(e)))


async def load_listing(
    *,
    remote: RemoteStore,
    cache: LocalCache,
    coordinate: Coordinate | None = None,
    filters: ListingFilters | None = None,
) -> list[ListingEntry]:
    try:
        remote_merchants = await remote.merchants.get_all()
    except RemoteUnavailable as e:
        logger.warning(f"[listing] remote merchants unavailable, using local overlay only: {e}")
        remote_merchants = []
    overlay = await load_local_overlay(cache)
    entries = annotate_distances(build_listing(remote_merchants, overlay), coordinate)
    return filter_listing(entries, filters or ListingFilters())


class ListingView:
    """Live listing: follows coordinate updates and local merchant writes."""

    def __init__(self, entries: list[ListingEntry], coordinate: Coordinate | None = None):
        self.coordinate = coordinate
        self.entries = annotate_distances(entries, coordinate)
        self._unsubscribers: list[Callable[[], None]] = []

    def update_coordinate(self, coordinate: Coordinate | None) -> None:
        self.coordinate = coordinate
        self.entries = annotate_distances(self.entries, coordinate)

    def apply_merchant(self, merchant: Merchant | None) -> None:
        if merchant is None:
            return
        now = datetime.now(timezone.utc)
        others = [e for e in self.entries if e.merchant.id != merchant.id]
        entry = _entry(merchant, now)
        if entry is None:
            self.entries = others
            return
        [entry] = annotate_distances([entry], self.coordinate)
        replaced = False
        updated: list[ListingEntry] = []
        for existing in self.entries:
            if existing.merchant.id == merchant.id:
                updated.append(entry)
                replaced = True
            else:
                updated.append(existing)
        self.entries = updated if replaced else [*others, entry]

    def watch(self, cache: LocalCache) -> None:
        """Re-render entries whenever one of their merchant records is written locally."""
        for entry in self.entries:
            self._unsubscribers.append(
                cache.subscribe(merchant_record(entry.merchant.id), self.apply_merchant)
            )

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
