"""Reservation and stock engine.

Reserve, collect and cancel single-bag orders while keeping the local cache
and the remote store in step.

Ordering rules:
- Local writes happen first so subscribers see the change immediately.
- Remote writes follow; their failures are logged and swallowed.
- Every stock change for one merchant runs under the local cache lock of that
  merchant record, which profile edits take too.
- The remote decrement is a single guarded UPDATE, so remote stock never goes
  negative. When it refuses, the local order stands and the conflict is logged.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
import inspect
import logging
from uuid import uuid4

from savebags.schemas.merchant import Merchant
from savebags.schemas.order import Order, OrderStatus
from savebags.services.codes import (
    build_qr_payload,
    generate_order_code,
    generate_pickup_code,
    normalize_code,
    parse_qr_payload,
)
from savebags.services.errors import (
    AmbiguousPickupCode,
    ConfirmationRequired,
    InvalidMerchantProfile,
    InvalidOrderState,
    InvalidScan,
    NotFound,
    OutOfStock,
    RemoteUnavailable,
    ValidationError,
)
from savebags.services.identity import Identity
from savebags.settings import get_settings
from savebags.stores.local_cache import (
    LocalCache,
    RecordKey,
    customer_orders,
    merchant_orders,
    merchant_record,
    order_record,
    store_local_merchant,
)
from savebags.stores.remote import RemoteStore

logger = logging.getLogger("uvicorn.error")

CollectedHook = Callable[[Order], Awaitable[None] | None]


@dataclass
class DashboardStats:
    pending: int = 0
    completed: int = 0
    cancelled: int = 0
    revenue: float = 0.0
    bags_saved: int = 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


def log_feedback_request(order: Order) -> None:
    """Default collection hook: record that the customer should be asked for a rating."""
    logger.info(f"[feedback] ask customer={order.customer_id} to rate merchant={order.merchant_id}")


def _merge_orders(remote_orders: list[Order], local_orders: list[Order]) -> list[Order]:
    """Union by id, local copy wins, newest first."""
    merged = {order.id: order for order in remote_orders}
    merged.update({order.id: order for order in local_orders})
    return sorted(merged.values(), key=lambda o: o.created_at, reverse=True)


class ReservationEngine:
    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        *,
        on_collected: CollectedHook | None = None,
    ):
        self.remote = remote
        self.cache = cache
        self.on_collected = on_collected

    def _lock(self, merchant_id: str) -> asyncio.Lock:
        return self.cache.lock(merchant_record(merchant_id))

    async def _freshest(self, merchant: Merchant) -> Merchant:
        local = await self.cache.read(merchant_record(merchant.id), None)
        return local if local is not None else merchant

    async def load_merchant(self, merchant_id: str) -> Merchant | None:
        merchant = await self.cache.read(merchant_record(merchant_id), None)
        if merchant is not None:
            return merchant
        try:
            return await self.remote.merchants.get(merchant_id)
        except RemoteUnavailable as e:
            logger.warning(f"[stock] could not load merchant {merchant_id}: {e}")
            return None

    async def _store_order(self, order: Order) -> None:
        await self.cache.write(order_record(order.id), order)
        await self._upsert_into(merchant_orders(order.merchant_id), order)
        await self._upsert_into(customer_orders(order.customer_id), order)

    async def _upsert_into(self, key: RecordKey[list[Order]], order: Order) -> None:
        await self.cache.update(key, [], lambda orders: [order, *(o for o in orders if o.id != order.id)])

    # ============================================================
    # Lookups
    # ============================================================

    async def get_order(self, order_id: str) -> Order:
        order = await self.cache.read(order_record(order_id), None)
        if order is not None:
            return order
        try:
            order = await self.remote.orders.get(order_id)
        except RemoteUnavailable as e:
            logger.warning(f"[orders] remote lookup failed for {order_id}: {e}")
            order = None
        if order is None:
            raise NotFound("Order not found", detail={"orderId": order_id})
        return order

    async def get_merchant_orders(self, merchant_id: str) -> list[Order]:
        local = await self.cache.read(merchant_orders(merchant_id), [])
        try:
            remote = await self.remote.orders.get_merchant_orders(merchant_id)
        except RemoteUnavailable as e:
            logger.warning(f"[orders] remote merchant orders failed for {merchant_id}: {e}")
            remote = []
        return _merge_orders(remote, local)

    async def get_customer_orders(self, customer_id: str) -> list[Order]:
        local = await self.cache.read(customer_orders(customer_id), [])
        try:
            remote = await self.remote.orders.get_customer_orders(customer_id)
        except RemoteUnavailable as e:
            logger.warning(f"[orders] remote customer orders failed for {customer_id}: {e}")
            remote = []
        return _merge_orders(remote, local)

    async def dashboard(self, merchant_id: str) -> DashboardStats:
        stats = DashboardStats()
        for order in await self.get_merchant_orders(merchant_id):
            if order.status == OrderStatus.PENDING:
                stats.pending += 1
            elif order.status == OrderStatus.COMPLETED:
                stats.completed += 1
                stats.revenue += order.amount
                stats.bags_saved += order.bags
            else:
                stats.cancelled += 1
        stats.revenue = round(stats.revenue, 2)
        return stats

    # ============================================================
    # Reserve
    # ============================================================

    async def reserve(self, merchant: Merchant, customer: Identity) -> Order:
        """Reserve one bag for `customer`.

        Raises:
            OutOfStock: The freshest known stock is zero. Nothing is written.
        """
        async with self._lock(merchant.id):
            current = await self._freshest(merchant)
            if not current.is_active or current.verified is False:
                raise ValidationError(
                    f"{current.name} is not taking reservations",
                    detail={"merchantId": current.id},
                )
            if current.bags_available <= 0:
                raise OutOfStock(
                    f"{current.name} has no bags left",
                    detail={"merchantId": current.id},
                )

            limit = get_settings().max_pending_orders_per_customer
            pending = [
                o
                for o in await self.cache.read(customer_orders(customer.id), [])
                if o.status == OrderStatus.PENDING
            ]
            if len(pending) >= limit:
                raise ValidationError(
                    f"At most {limit} pending reservations per customer",
                    detail={"limit": limit},
                )

            created_at = _now()
            order_id = str(uuid4())
            code = generate_pickup_code()
            order_code = generate_order_code()
            order = Order(
                id=order_id,
                merchant_id=current.id,
                merchant_name=current.name,
                customer_id=customer.id,
                customer_name=customer.display_name,
                code=code,
                order_code=order_code,
                qr_data=build_qr_payload(
                    order_id=order_id,
                    merchant_id=current.id,
                    code=code,
                    order_code=order_code,
                    timestamp=created_at,
                ),
                bags=1,
                amount=current.save_price,
                status=OrderStatus.PENDING,
                created_at=created_at,
            )

            await self._store_order(order)
            await store_local_merchant(
                self.cache,
                current.model_copy(
                    update={
                        "bags_available": current.bags_available - 1,
                        "total_saved": current.total_saved + 1,
                    }
                ),
            )
            await self._push_reservation(order, pending_sync=current.pending_sync)

        logger.info(f"[reserve] order={order.id} merchant={order.merchant_id} customer={customer.id}")
        return order

    async def _push_reservation(self, order: Order, *, pending_sync: bool) -> None:
        if pending_sync:
            logger.warning(f"[reserve] merchant {order.merchant_id} not synced yet, order {order.id} kept local")
            return
        try:
            await self.remote.orders.create(order)
        except RemoteUnavailable as e:
            logger.warning(f"[reserve] remote order create failed for {order.id}: {e}")
            return
        try:
            if not await self.remote.merchants.decrement_stock(order.merchant_id):
                logger.warning(
                    f"[reserve] stock conflict: remote had no bag left for merchant={order.merchant_id} order={order.id}"
                )
            await self.remote.merchants.record_sale(order.merchant_id)
        except RemoteUnavailable as e:
            logger.warning(f"[reserve] remote stock update failed for {order.merchant_id}: {e}")

    # ============================================================
    # Collect
    # ============================================================

    async def mark_collected(self, order_id: str, *, merchant_id: str) -> Order:
        """pending -> completed, then fire the feedback hook.

        Raises:
            NotFound: Unknown order or it belongs to another merchant.
            InvalidOrderState: The order is no longer pending.
        """
        order = await self.get_order(order_id)
        if order.merchant_id != merchant_id:
            raise NotFound("Order not found", detail={"orderId": order_id})

        async with self._lock(merchant_id):
            order = await self.get_order(order_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidOrderState(
                    f"Order is {order.status.value}",
                    detail={"orderId": order_id, "status": order.status.value},
                )
            completed = order.model_copy(
                update={"status": OrderStatus.COMPLETED, "completed_at": _now()}
            )
            await self._store_order(completed)
            try:
                if not await self.remote.orders.complete(order_id):
                    logger.warning(f"[collect] remote order {order_id} was not pending")
            except RemoteUnavailable as e:
                logger.warning(f"[collect] remote complete failed for {order_id}: {e}")

        logger.info(f"[collect] order={order_id} merchant={merchant_id}")
        await self._fire_collected(completed)
        return completed

    async def _fire_collected(self, order: Order) -> None:
        if self.on_collected is None:
            return
        try:
            result = self.on_collected(order)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"[collect] feedback hook failed for order={order.id}")

    async def confirm_by_qr_scan(self, merchant_id: str, scan_result: str) -> Order:
        """Collect the order encoded in a scanned QR.

        Raises:
            InvalidScan: Malformed payload, another merchant's order, or code mismatch.
        """
        payload = parse_qr_payload(scan_result)
        if payload.merchant_id != merchant_id:
            raise InvalidScan("This code belongs to another merchant")
        try:
            order = await self.get_order(payload.order_id)
        except NotFound as e:
            raise InvalidScan("Order not found for this code") from e
        if normalize_code(order.code) != normalize_code(payload.code):
            raise InvalidScan("Pickup code does not match the order")
        return await self.mark_collected(order.id, merchant_id=merchant_id)

    async def confirm_by_pickup_code(self, merchant_id: str, code: str) -> Order:
        """Collect by manually entered pickup code (case-insensitive)."""
        wanted = normalize_code(code)
        matches = [
            order
            for order in await self.get_merchant_orders(merchant_id)
            if order.status == OrderStatus.PENDING and normalize_code(order.code) == wanted
        ]
        if not matches:
            raise InvalidScan("No pending order with this pickup code", detail={"code": wanted})
        if len(matches) > 1:
            raise AmbiguousPickupCode(
                "Several pending orders share this code, scan the QR instead",
                detail={"code": wanted, "orders": [o.id for o in matches]},
            )
        return await self.mark_collected(matches[0].id, merchant_id=merchant_id)

    # ============================================================
    # Cancel
    # ============================================================

    async def cancel_reservation(self, order_id: str, *, customer_id: str, confirmed: bool) -> Order:
        """pending -> cancelled and give the bag back. Cancellation is terminal.

        Raises:
            ConfirmationRequired: `confirmed` is not True.
            NotFound: Unknown order or it belongs to another customer.
            InvalidOrderState: The order is no longer pending.
        """
        if confirmed is not True:
            raise ConfirmationRequired("Cancellation must be confirmed")

        order = await self.get_order(order_id)
        if order.customer_id != customer_id:
            raise NotFound("Order not found", detail={"orderId": order_id})

        async with self._lock(order.merchant_id):
            # Re-read under the lock: collect and cancel may race.
            order = await self.get_order(order_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidOrderState(
                    f"Order is {order.status.value}",
                    detail={"orderId": order_id, "status": order.status.value},
                )
            cancelled = order.model_copy(
                update={"status": OrderStatus.CANCELLED, "cancelled_at": _now()}
            )
            await self._store_order(cancelled)

            merchant = await self.load_merchant(order.merchant_id)
            if merchant is not None:
                await store_local_merchant(
                    self.cache,
                    merchant.model_copy(update={"bags_available": merchant.bags_available + 1}),
                )

            try:
                if not await self.remote.orders.cancel(order_id, order.merchant_id):
                    logger.warning(f"[cancel] remote order {order_id} was not pending")
            except RemoteUnavailable as e:
                logger.warning(f"[cancel] remote cancel failed for {order_id}: {e}")

        logger.info(f"[cancel] order={order_id} merchant={order.merchant_id}")
        return cancelled

    # ============================================================
    # Stock
    # ============================================================

    async def set_stock(self, merchant: Merchant, bags: int) -> Merchant:
        """Merchant sets today's bag count."""
        if isinstance(bags, bool) or not isinstance(bags, int) or bags < 0:
            raise InvalidMerchantProfile(
                "Bags available must be a non-negative integer",
                detail={"fields": {"bagsAvailable": "Must be a non-negative integer"}},
            )
        async with self._lock(merchant.id):
            current = await self._freshest(merchant)
            updated = current.model_copy(update={"bags_available": bags})
            await store_local_merchant(self.cache, updated)
            if not updated.pending_sync:
                try:
                    await self.remote.merchants.set_stock(merchant.id, bags)
                except (RemoteUnavailable, NotFound) as e:
                    logger.warning(f"[stock] remote stock update failed for {merchant.id}: {e}")
        logger.info(f"[stock] merchant={merchant.id} bags={bags}")
        return updated
