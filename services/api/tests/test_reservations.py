"""Tests for the reservation and stock engine."""

import asyncio
import json
import re

import pytest

from savebags.schemas import OrderStatus
from savebags.services import reservations
from savebags.services.codes import parse_qr_payload
from savebags.services.errors import (
    AmbiguousPickupCode,
    ConfirmationRequired,
    InvalidMerchantProfile,
    InvalidOrderState,
    InvalidScan,
    NotFound,
    OutOfStock,
    ValidationError,
)
from savebags.services.identity import Identity
from savebags.services.reservations import ReservationEngine
from savebags.stores.local_cache import customer_orders, merchant_record

ANA = Identity(id="customer-ana", display_name="Ana")
LUIS = Identity(id="customer-luis", display_name="Luis")


@pytest.fixture
def collected():
    return []


@pytest.fixture
def engine(remote, cache, collected):
    return ReservationEngine(remote, cache, on_collected=collected.append)


@pytest.fixture
def seed_merchant(remote, make_merchant):
    async def _seed(**overrides):
        return await remote.merchants.create(make_merchant(**overrides))

    return _seed


@pytest.mark.asyncio
async def test_reserve_creates_pending_order_and_takes_a_bag(engine, remote, cache, seed_merchant):
    merchant = await seed_merchant(bags_available=3, save_price=99)

    order = await engine.reserve(merchant, ANA)

    assert order.status == OrderStatus.PENDING
    assert order.amount == 99
    assert order.bags == 1
    assert order.customer_name == "Ana"
    assert re.fullmatch(r"^[A-Z0-9]{4}$", order.code)

    payload = parse_qr_payload(order.qr_data)
    assert payload.code == order.code
    assert payload.order_id == order.id
    assert payload.merchant_id == merchant.id

    local = await cache.read(merchant_record(merchant.id), None)
    assert local.bags_available == 2
    assert local.total_saved == 1
    assert (await remote.merchants.get(merchant.id)).bags_available == 2
    assert (await remote.orders.get(order.id)).status == OrderStatus.PENDING
    assert [o.id for o in await engine.get_customer_orders(ANA.id)] == [order.id]


@pytest.mark.asyncio
async def test_out_of_stock_writes_nothing(engine, remote, fake_redis, seed_merchant):
    merchant = await seed_merchant(bags_available=0)

    with pytest.raises(OutOfStock):
        await engine.reserve(merchant, ANA)

    assert fake_redis.data == {}
    assert await remote.orders.get_merchant_orders(merchant.id) == []


@pytest.mark.asyncio
async def test_last_bag_goes_to_the_first_customer(engine, remote, seed_merchant):
    merchant = await seed_merchant(bags_available=1)

    await engine.reserve(merchant, ANA)
    with pytest.raises(OutOfStock):
        await engine.reserve(merchant, LUIS)

    assert (await remote.merchants.get(merchant.id)).bags_available == 0


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(engine, remote, seed_merchant):
    merchant = await seed_merchant(bags_available=2)
    customers = [Identity(id=f"c{i}", display_name=f"C{i}") for i in range(3)]

    results = await asyncio.gather(
        *(engine.reserve(merchant, customer) for customer in customers),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, OutOfStock)) == 1
    assert (await remote.merchants.get(merchant.id)).bags_available == 0


@pytest.mark.asyncio
async def test_inactive_or_unverified_merchant_refuses_reservations(engine, seed_merchant):
    inactive = await seed_merchant(is_active=False)
    unverified = await seed_merchant(verified=False)

    for merchant in (inactive, unverified):
        with pytest.raises(ValidationError):
            await engine.reserve(merchant, ANA)


@pytest.mark.asyncio
async def test_pending_reservation_limit_per_customer(engine, seed_merchant):
    merchant = await seed_merchant(bags_available=20)
    for _ in range(10):
        await engine.reserve(merchant, ANA)

    with pytest.raises(ValidationError) as exc:
        await engine.reserve(merchant, ANA)
    assert exc.value.detail == {"limit": 10}


@pytest.mark.asyncio
async def test_cancel_round_trip_restores_stock(engine, remote, cache, seed_merchant):
    merchant = await seed_merchant(bags_available=3)
    order = await engine.reserve(merchant, ANA)

    cancelled = await engine.cancel_reservation(order.id, customer_id=ANA.id, confirmed=True)

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert (await cache.read(merchant_record(merchant.id), None)).bags_available == 3
    assert (await remote.merchants.get(merchant.id)).bags_available == 3
    assert (await remote.orders.get(order.id)).status == OrderStatus.CANCELLED

    with pytest.raises(InvalidOrderState):
        await engine.cancel_reservation(order.id, customer_id=ANA.id, confirmed=True)


@pytest.mark.asyncio
async def test_cancel_requires_confirmation(engine, seed_merchant):
    merchant = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    with pytest.raises(ConfirmationRequired):
        await engine.cancel_reservation(order.id, customer_id=ANA.id, confirmed=False)

    assert (await engine.get_order(order.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_of_someone_elses_order_is_not_found(engine, seed_merchant):
    merchant = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    with pytest.raises(NotFound):
        await engine.cancel_reservation(order.id, customer_id=LUIS.id, confirmed=True)


@pytest.mark.asyncio
async def test_mark_collected_fires_hook_once(engine, remote, collected, seed_merchant):
    merchant = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    completed = await engine.mark_collected(order.id, merchant_id=merchant.id)

    assert completed.status == OrderStatus.COMPLETED
    assert completed.completed_at is not None
    assert [o.id for o in collected] == [order.id]
    assert (await remote.orders.get(order.id)).status == OrderStatus.COMPLETED

    with pytest.raises(InvalidOrderState):
        await engine.mark_collected(order.id, merchant_id=merchant.id)
    with pytest.raises(InvalidOrderState):
        await engine.cancel_reservation(order.id, customer_id=ANA.id, confirmed=True)
    assert len(collected) == 1


@pytest.mark.asyncio
async def test_failing_hook_does_not_undo_collection(remote, cache, seed_merchant):
    async def broken_hook(order):
        raise RuntimeError("mailer down")

    engine = ReservationEngine(remote, cache, on_collected=broken_hook)
    merchant = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    completed = await engine.mark_collected(order.id, merchant_id=merchant.id)

    assert completed.status == OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_other_merchant_cannot_collect(engine, seed_merchant):
    merchant = await seed_merchant()
    other = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    with pytest.raises(NotFound):
        await engine.mark_collected(order.id, merchant_id=other.id)


@pytest.mark.asyncio
async def test_confirm_by_qr_scan(engine, seed_merchant):
    merchant = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    completed = await engine.confirm_by_qr_scan(merchant.id, order.qr_data)

    assert completed.id == order.id
    assert completed.status == OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_qr_scan_from_another_merchant_is_invalid(engine, seed_merchant):
    merchant = await seed_merchant()
    other = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    with pytest.raises(InvalidScan):
        await engine.confirm_by_qr_scan(other.id, order.qr_data)
    with pytest.raises(InvalidScan):
        await engine.confirm_by_qr_scan(merchant.id, "https://example.com/not-a-pickup")
    data = json.loads(order.qr_data)
    data["code"] = "ZZZZ" if order.code != "ZZZZ" else "YYYY"
    tampered = json.dumps(data)
    with pytest.raises(InvalidScan):
        await engine.confirm_by_qr_scan(merchant.id, tampered)

    assert (await engine.get_order(order.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_confirm_by_pickup_code_is_case_insensitive(engine, seed_merchant):
    merchant = await seed_merchant()
    order = await engine.reserve(merchant, ANA)

    completed = await engine.confirm_by_pickup_code(merchant.id, f" {order.code.lower()} ")

    assert completed.id == order.id


@pytest.mark.asyncio
async def test_unknown_pickup_code_is_invalid(engine, seed_merchant, monkeypatch):
    monkeypatch.setattr(reservations, "generate_pickup_code", lambda: "AAAA")
    merchant = await seed_merchant()
    await engine.reserve(merchant, ANA)

    with pytest.raises(InvalidScan):
        await engine.confirm_by_pickup_code(merchant.id, "BBBB")


@pytest.mark.asyncio
async def test_ambiguous_pickup_code(engine, seed_merchant, monkeypatch):
    monkeypatch.setattr(reservations, "generate_pickup_code", lambda: "AAAA")
    merchant = await seed_merchant()
    await engine.reserve(merchant, ANA)
    await engine.reserve(merchant, LUIS)

    with pytest.raises(AmbiguousPickupCode) as exc:
        await engine.confirm_by_pickup_code(merchant.id, "aaaa")
    assert len(exc.value.detail["orders"]) == 2


@pytest.mark.asyncio
async def test_reserve_keeps_local_order_when_remote_down(remote_down, cache, make_merchant):
    engine = ReservationEngine(remote_down, cache)
    merchant = make_merchant(bags_available=2)

    order = await engine.reserve(merchant, ANA)

    assert [o.id for o in await cache.read(customer_orders(ANA.id), [])] == [order.id]
    assert [o.id for o in await engine.get_customer_orders(ANA.id)] == [order.id]
    assert (await cache.read(merchant_record(merchant.id), None)).bags_available == 1


@pytest.mark.asyncio
async def test_dashboard_counts_by_status(engine, seed_merchant):
    merchant = await seed_merchant(save_price=99)
    first = await engine.reserve(merchant, ANA)
    second = await engine.reserve(merchant, LUIS)
    await engine.reserve(merchant, Identity(id="c3", display_name="C3"))
    await engine.mark_collected(first.id, merchant_id=merchant.id)
    await engine.cancel_reservation(second.id, customer_id=LUIS.id, confirmed=True)

    stats = await engine.dashboard(merchant.id)

    assert (stats.pending, stats.completed, stats.cancelled) == (1, 1, 1)
    assert stats.revenue == 99
    assert stats.bags_saved == 1


@pytest.mark.asyncio
async def test_set_stock(engine, remote, cache, seed_merchant):
    merchant = await seed_merchant(bags_available=1)

    updated = await engine.set_stock(merchant, 8)

    assert updated.bags_available == 8
    assert (await remote.merchants.get(merchant.id)).bags_available == 8
    assert (await cache.read(merchant_record(merchant.id), None)).bags_available == 8

    with pytest.raises(InvalidMerchantProfile):
        await engine.set_stock(merchant, -1)
