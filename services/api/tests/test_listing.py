"""Tests for consumer listing assembly, filters and live updates."""

from datetime import datetime, timedelta, timezone

import pytest

from savebags.schemas import Coordinate, PickupWindow, VerificationStatus
from savebags.services.listing import (
    ListingFilters,
    ListingView,
    annotate_distances,
    build_listing,
    filter_listing,
    load_listing,
)
from savebags.stores.local_cache import merchant_record, store_local_merchant

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
ZOCALO = Coordinate(lat=19.4326, lng=-99.1332)


def test_local_copy_wins_on_id_collision(make_merchant):
    remote_copy = make_merchant(name="Remote name", bags_available=5)
    local_copy = remote_copy.model_copy(update={"name": "Local name", "bags_available": 1})

    entries = build_listing([remote_copy], [local_copy], now=NOW)

    assert len(entries) == 1
    assert entries[0].merchant.name == "Local name"
    assert entries[0].merchant.bags_available == 1


def test_visibility_and_prominence(make_merchant):
    verified = make_merchant(name="Verified")
    unknown = make_merchant(name="Unknown", verified=None, verification_status=VerificationStatus.DRAFT)
    unverified = make_merchant(name="Unverified", verified=False, verification_status=VerificationStatus.PENDING)
    inactive = make_merchant(name="Inactive", is_active=False)

    entries = build_listing([verified, unverified, inactive], [unknown], now=NOW)

    by_name = {e.merchant.name: e for e in entries}
    assert set(by_name) == {"Verified", "Unknown"}
    assert (by_name["Verified"].prominence, by_name["Verified"].badge) == ("standard", "verified")
    assert (by_name["Unknown"].prominence, by_name["Unknown"].badge) == ("reduced", "pending")


def test_discount_and_new_flag(make_merchant):
    fresh = make_merchant(created_at=NOW - timedelta(days=2))
    old = make_merchant(created_at=NOW - timedelta(days=30), original_price=200, save_price=100)

    entries = {e.merchant.id: e for e in build_listing([fresh, old], [], now=NOW)}

    assert entries[fresh.id].discount == 67
    assert entries[fresh.id].is_new is True
    assert entries[old.id].discount == 50
    assert entries[old.id].is_new is False


def test_annotate_distances_uses_haversine(make_merchant):
    near = make_merchant(location=Coordinate(lat=19.4326, lng=-99.1332))
    no_location = make_merchant(location=None, distance=2.5)

    entries = annotate_distances(build_listing([near, no_location], [], now=NOW), ZOCALO)

    assert entries[0].distance == 0.0
    assert entries[1].distance == 2.5


def test_filters_and_default_distance_sort(make_merchant):
    bakery = make_merchant(
        name="Panadería Sol",
        category="bakery",
        location=Coordinate(lat=19.44, lng=-99.14),
        dietary=["vegetarian"],
    )
    cafe = make_merchant(
        name="Café Norte",
        category="cafe",
        location=Coordinate(lat=19.50, lng=-99.14),
        save_price=60,
        original_price=200,
        dietary=["vegetarian", "vegan"],
    )
    entries = annotate_distances(build_listing([cafe, bakery], [], now=NOW), ZOCALO)

    assert [e.merchant.name for e in filter_listing(entries, ListingFilters())] == ["Panadería Sol", "Café Norte"]
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(search="norte"))] == ["Café Norte"]
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(category="bakery"))] == ["Panadería Sol"]
    assert len(filter_listing(entries, ListingFilters(category="all"))) == 2
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(max_price=70))] == ["Café Norte"]
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(dietary=["vegan"]))] == ["Café Norte"]
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(sort="price"))] == ["Café Norte", "Panadería Sol"]
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(sort="savings"))] == ["Café Norte", "Panadería Sol"]
    assert filter_listing(entries, ListingFilters(favorites={bakery.id}))[0].merchant.id == bakery.id


def test_pickup_window_filter(make_merchant):
    early = make_merchant(name="Early", pickup=PickupWindow(start="17:00", end="18:00"))
    late = make_merchant(name="Late", pickup=PickupWindow(start="21:00", end="22:00"))
    entries = build_listing([early, late], [], now=NOW)

    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(pickup_from="19:00"))] == ["Late"]
    assert [e.merchant.name for e in filter_listing(entries, ListingFilters(pickup_until="20:00"))] == ["Early"]


def test_reduced_entries_sort_after_standard(make_merchant):
    pending = make_merchant(name="Pending", verified=None, rating=5.0)
    verified = make_merchant(name="Verified", rating=3.0)

    ordered = filter_listing(build_listing([pending, verified], [], now=NOW), ListingFilters(sort="rating"))

    assert [e.merchant.name for e in ordered] == ["Verified", "Pending"]


@pytest.mark.asyncio
async def test_load_listing_merges_remote_and_local_overlay(remote, cache, make_merchant):
    listed = await remote.merchants.create(make_merchant(name="Remote"))
    await store_local_merchant(cache, listed.model_copy(update={"bags_available": 0}))
    await store_local_merchant(cache, make_merchant(name="Local only", verified=None))

    entries = await load_listing(remote=remote, cache=cache, coordinate=ZOCALO)

    assert [e.merchant.name for e in entries] == ["Remote", "Local only"]
    assert entries[0].merchant.bags_available == 0


@pytest.mark.asyncio
async def test_load_listing_falls_back_to_overlay_when_remote_down(remote_down, cache, make_merchant):
    await store_local_merchant(cache, make_merchant(name="Cached"))

    entries = await load_listing(remote=remote_down, cache=cache)

    assert [e.merchant.name for e in entries] == ["Cached"]


@pytest.mark.asyncio
async def test_listing_view_follows_local_writes(cache, make_merchant):
    merchant = make_merchant(bags_available=4)
    view = ListingView(build_listing([merchant], [], now=NOW), ZOCALO)
    view.watch(cache)

    await cache.write(merchant_record(merchant.id), merchant.model_copy(update={"bags_available": 3}))
    assert view.entries[0].merchant.bags_available == 3

    await cache.write(merchant_record(merchant.id), merchant.model_copy(update={"is_active": False}))
    assert view.entries == []

    view.close()
    await cache.write(merchant_record(merchant.id), merchant)
    assert view.entries == []


def test_listing_view_coordinate_update(make_merchant):
    merchant = make_merchant(location=ZOCALO)
    view = ListingView(build_listing([merchant], [], now=NOW))
    assert view.entries[0].distance is None

    view.update_coordinate(ZOCALO)

    assert view.entries[0].distance == 0.0
