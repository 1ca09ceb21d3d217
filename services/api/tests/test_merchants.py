"""Tests for the merchant profile service."""

import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from savebags.schemas import PickupWindow, Verification, VerificationStatus
from savebags.schemas.merchant import MerchantSignup, MerchantUpdate
from savebags.services.errors import InvalidMerchantProfile, NotFound, RemoteUnavailable
from savebags.services.identity import Identity
from savebags.services.merchants import (
    create_draft_merchant,
    deactivate,
    discount_percentage,
    get_my_merchant,
    is_listable,
    update_profile,
    validate_profile,
)
from savebags.services.reservations import ReservationEngine
from savebags.stores.local_cache import merchant_index, merchant_record, pending_sync_merchants

ANA = Identity(id="customer-ana", display_name="Ana")


@pytest.mark.parametrize(
    ("original", "save", "expected"),
    [(300, 99, 67), (100, 50, 50), (200, 199, 1), (0, 0, 0)],
)
def test_discount_percentage(original, save, expected):
    assert discount_percentage(original, save) == expected


def test_is_listable(make_merchant):
    assert is_listable(make_merchant())
    assert not is_listable(make_merchant(is_active=False))
    assert not is_listable(make_merchant(verified=False))
    assert not is_listable(make_merchant(verified=None))


def test_validate_profile_collects_every_field_error(make_merchant):
    merchant = make_merchant(
        save_price=120,
        original_price=100,
        rating=7,
        category="florist",
        dietary=["keto"],
        pickup=PickupWindow(start="22:00", end="20:00"),
    )
    with pytest.raises(InvalidMerchantProfile) as exc:
        validate_profile(merchant)

    fields = exc.value.detail["fields"]
    assert set(fields) == {"originalPrice", "rating", "category", "dietary", "pickup"}


def test_validate_profile_accepts_defaults(make_merchant):
    validate_profile(make_merchant())


@pytest.mark.asyncio
async def test_create_draft_merchant_starts_unverified(remote, cache):
    merchant = await create_draft_merchant(
        "owner-1",
        MerchantSignup(name="Tortas Doña Mary", category="restaurant"),
        remote=remote,
        cache=cache,
    )

    assert merchant.verified is False
    assert merchant.verification_status == VerificationStatus.DRAFT
    assert merchant.pending_sync is False
    assert (await remote.merchants.get(merchant.id)).name == "Tortas Doña Mary"
    assert (await cache.read(merchant_record(merchant.id), None)).id == merchant.id


@pytest.mark.asyncio
async def test_create_draft_merchant_keeps_local_copy_when_remote_down(remote_down, cache):
    merchant = await create_draft_merchant(
        "owner-1",
        MerchantSignup(name="Offline Café", category="cafe"),
        remote=remote_down,
        cache=cache,
    )

    assert merchant.pending_sync is True
    assert await cache.read(pending_sync_merchants(), []) == [merchant.id]
    assert (await get_my_merchant("owner-1", remote=remote_down, cache=cache)).id == merchant.id


@pytest.mark.asyncio
async def test_create_draft_merchant_rejects_invalid_prices(remote, cache):
    with pytest.raises(InvalidMerchantProfile):
        await create_draft_merchant(
            "owner-1",
            MerchantSignup(name="Bad", original_price=50, save_price=99),
            remote=remote,
            cache=cache,
        )


@pytest.mark.asyncio
async def test_get_my_merchant_unknown_owner(remote, cache):
    with pytest.raises(NotFound):
        await get_my_merchant("ghost", remote=remote, cache=cache)


@pytest.mark.asyncio
async def test_update_profile_writes_local_and_remote(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant())

    updated = await update_profile(
        merchant,
        MerchantUpdate(save_price=120, description="Pan del día"),
        remote=remote,
        cache=cache,
    )

    assert updated.save_price == 120
    assert (await cache.read(merchant_record(merchant.id), None)).description == "Pan del día"
    assert (await remote.merchants.get(merchant.id)).save_price == 120


@pytest.mark.asyncio
async def test_update_profile_validates_before_writing(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant())

    with pytest.raises(InvalidMerchantProfile):
        await update_profile(merchant, MerchantUpdate(save_price=500), remote=remote, cache=cache)

    assert await cache.read(merchant_record(merchant.id), None) is None
    assert (await remote.merchants.get(merchant.id)).save_price == 99


@pytest.mark.asyncio
async def test_deactivate_hides_merchant(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant())

    await deactivate(merchant, remote=remote, cache=cache)

    assert await remote.merchants.get_all() == []
    assert (await remote.merchants.get(merchant.id)).is_active is False


@pytest.mark.asyncio
async def test_update_profile_after_reservation_keeps_stock(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant(bags_available=5))
    snapshot = await get_my_merchant(merchant.owner_id, remote=remote, cache=cache)
    await ReservationEngine(remote, cache).reserve(snapshot, ANA)

    updated = await update_profile(snapshot, MerchantUpdate(description="Pan del día"), remote=remote, cache=cache)

    assert updated.bags_available == 4
    assert (await cache.read(merchant_record(merchant.id), None)).bags_available == 4
    stored = await remote.merchants.get(merchant.id)
    assert stored.bags_available == 4
    assert stored.description == "Pan del día"


@pytest.mark.asyncio
async def test_update_profile_racing_a_reservation_keeps_both(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant(bags_available=5))
    engine = ReservationEngine(remote, cache)

    await asyncio.gather(
        engine.reserve(merchant, ANA),
        update_profile(merchant, MerchantUpdate(description="Conchas"), remote=remote, cache=cache),
    )

    for stored in (await cache.read(merchant_record(merchant.id), None), await remote.merchants.get(merchant.id)):
        assert stored.bags_available == 4
        assert stored.description == "Conchas"


@pytest.mark.asyncio
async def test_deactivate_after_reservation_keeps_stock(remote, cache, make_merchant):
    merchant = await remote.merchants.create(make_merchant(bags_available=2))
    await ReservationEngine(remote, cache).reserve(merchant, ANA)

    await deactivate(merchant, remote=remote, cache=cache)

    stored = await remote.merchants.get(merchant.id)
    assert stored.is_active is False
    assert stored.bags_available == 1
    assert (await cache.read(merchant_record(merchant.id), None)).bags_available == 1


@pytest.mark.asyncio
async def test_get_my_merchant_keeps_local_stock_when_remote_write_failed(remote, cache, make_merchant, monkeypatch):
    merchant = await remote.merchants.create(make_merchant(bags_available=5))

    async def unreachable(order):
        raise RemoteUnavailable("remote down")

    monkeypatch.setattr(remote.orders, "create", unreachable)
    engine = ReservationEngine(remote, cache)
    await engine.reserve(merchant, ANA)

    mine = await get_my_merchant(merchant.owner_id, remote=remote, cache=cache)

    assert mine.bags_available == 4
    assert (await cache.read(merchant_record(merchant.id), None)).bags_available == 4
    assert (await remote.merchants.get(merchant.id)).bags_available == 5
    assert (await engine.dashboard(merchant.id)).pending == 1


@pytest.mark.asyncio
async def test_get_my_merchant_takes_review_flags_from_remote(remote, cache, make_merchant):
    merchant = await remote.merchants.create(
        make_merchant(bags_available=5, verified=False, verification_status=VerificationStatus.DRAFT)
    )
    await cache.write(merchant_record(merchant.id), merchant.model_copy(update={"bags_available": 2}))
    await remote.verifications.submit(
        Verification(
            id=str(uuid4()),
            merchant_id=merchant.id,
            contact_name="Ana",
            contact_phone="5550000000",
            tax_id="XAXX010101000",
            status=VerificationStatus.PENDING,
            submitted_at=datetime.now(timezone.utc),
        )
    )
    await remote.merchants.approve(merchant.id)

    mine = await get_my_merchant(merchant.owner_id, remote=remote, cache=cache)

    assert mine.verified is True
    assert mine.verification_status == VerificationStatus.APPROVED
    assert mine.bags_available == 2


@pytest.mark.asyncio
async def test_concurrent_offline_signups_are_all_queued(remote_down, cache):
    merchants = await asyncio.gather(
        *(
            create_draft_merchant(f"owner-{n}", MerchantSignup(name=f"Café {n}"), remote=remote_down, cache=cache)
            for n in range(3)
        )
    )

    ids = sorted(m.id for m in merchants)
    assert sorted(await cache.read(pending_sync_merchants(), [])) == ids
    assert sorted(await cache.read(merchant_index(), [])) == ids
