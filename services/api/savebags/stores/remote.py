"""Remote store: typed repositories over the PostgreSQL session.

Each repository call opens its own session (commit on success, rollback on
error). Driver, pool and "not initialized" failures surface as
RemoteUnavailable so callers can decide between falling back and retrying.
Rows are converted to domain objects through schemas.wire only.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from savebags.models import FavoriteRow, MerchantRow, OrderRow, VerificationRow
from savebags.schemas.merchant import Merchant, VerificationStatus, check_transition
from savebags.schemas.order import Order, OrderStatus
from savebags.schemas.verification import Verification
from savebags.schemas.wire import (
    MerchantWire,
    OrderWire,
    VerificationWire,
    merchant_from_wire,
    merchant_to_wire,
    order_from_wire,
    order_to_wire,
    verification_from_wire,
    verification_to_wire,
)
from savebags.services.errors import NotFound, RemoteUnavailable
from savebags.stores.postgres import get_session

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def remote_session() -> AsyncGenerator[AsyncSession, None]:
    """get_session() with infrastructure failures mapped to RemoteUnavailable."""
    try:
        async with get_session() as session:
            yield session
    except (SQLAlchemyError, OSError, RuntimeError) as e:
        raise RemoteUnavailable(f"Remote store unavailable: {type(e).__name__}") from e


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Columns MerchantRepository.update never writes.
_NOT_PROFILE_COLUMNS = {
    "id",
    "owner_id",
    "created_at",
    "bags_available",
    "total_saved",
    "rating",
    "reviews",
    "verified",
    "verification_status",
}


def _merchant(row: MerchantRow) -> Merchant:
    return merchant_from_wire(MerchantWire.model_validate(row))


def _order(row: OrderRow) -> Order:
    return order_from_wire(OrderWire.model_validate(row))


def _verification(row: VerificationRow) -> Verification:
    return verification_from_wire(VerificationWire.model_validate(row))


async def _set_merchant_verification(
    session: AsyncSession,
    merchant_id: str,
    *,
    verified: bool,
    status: VerificationStatus,
) -> None:
    await session.execute(
        update(MerchantRow)
        .where(MerchantRow.id == merchant_id)
        .values(verified=verified, verification_status=status.value)
    )


async def _verification_for_merchant(session: AsyncSession, merchant_id: str) -> VerificationRow | None:
    result = await session.execute(
        select(VerificationRow).where(VerificationRow.merchant_id == merchant_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def _review(
    session: AsyncSession,
    row: VerificationRow | None,
    merchant_id: str,
    *,
    status: VerificationStatus,
    reason: str | None = None,
    verification_id: str | None = None,
) -> Verification:
    # Verification row and merchant flags commit together or not at all.
    if row is None or row.merchant_id != merchant_id:
        raise NotFound(
            "Verification not found",
            detail={"verificationId": verification_id, "merchantId": merchant_id},
        )
    current = VerificationStatus(row.status)
    check_transition(current, status)
    if current == status:
        return _verification(row)
    row.status = status.value
    row.reviewed_at = _now()
    row.rejection_reason = reason
    await _set_merchant_verification(
        session,
        merchant_id,
        verified=status == VerificationStatus.APPROVED,
        status=status,
    )
    await session.flush()
    return _verification(row)


class MerchantRepository:
    async def get_all(self) -> list[Merchant]:
        """Active and verified merchants, newest first."""
        async with remote_session() as session:
            result = await session.execute(
                select(MerchantRow)
                .where(MerchantRow.is_active.is_(True), MerchantRow.verified.is_(True))
                .order_by(MerchantRow.created_at.desc())
            )
            return [_merchant(row) for row in result.scalars()]

    async def get_mine(self, owner_id: str) -> Merchant | None:
        async with remote_session() as session:
            result = await session.execute(
                select(MerchantRow).where(MerchantRow.owner_id == owner_id).limit(1)
            )
            row = result.scalar_one_or_none()
            return _merchant(row) if row else None

    async def get(self, merchant_id: str) -> Merchant | None:
        async with remote_session() as session:
            row = await session.get(MerchantRow, merchant_id)
            return _merchant(row) if row else None

    async def create(self, merchant: Merchant) -> Merchant:
        wire = merchant_to_wire(merchant)
        if wire.created_at is None:
            wire.created_at = _now()
        async with remote_session() as session:
            row = MerchantRow(**wire.model_dump())
            session.add(row)
            await session.flush()
            return _merchant(row)

    async def update(self, merchant: Merchant) -> Merchant:
        """Write the owner-editable profile and is_active.

        Stock and sales counters belong to set_stock/decrement_stock/record_sale,
        and the verification flags to the review transaction, so they are left
        untouched here.
        """
        values = merchant_to_wire(merchant).model_dump(exclude=_NOT_PROFILE_COLUMNS)
        async with remote_session() as session:
            row = await session.get(MerchantRow, merchant.id)
            if row is None:
                raise NotFound(f"Merchant {merchant.id} not found", detail={"merchantId": merchant.id})
            for name, value in values.items():
                setattr(row, name, value)
            await session.flush()
            return _merchant(row)

    async def set_stock(self, merchant_id: str, bags: int) -> None:
        async with remote_session() as session:
            result = await session.execute(
                update(MerchantRow).where(MerchantRow.id == merchant_id).values(bags_available=bags)
            )
            if result.rowcount != 1:
                raise NotFound(f"Merchant {merchant_id} not found", detail={"merchantId": merchant_id})

    async def decrement_stock(self, merchant_id: str) -> bool:
        """Atomically take one bag. False when no bag was left to take."""
        async with remote_session() as session:
            result = await session.execute(
                update(MerchantRow)
                .where(MerchantRow.id == merchant_id, MerchantRow.bags_available > 0)
                .values(bags_available=MerchantRow.bags_available - 1)
            )
            return result.rowcount == 1

    async def increment_stock(self, merchant_id: str) -> None:
        async with remote_session() as session:
            await session.execute(
                update(MerchantRow)
                .where(MerchantRow.id == merchant_id)
                .values(bags_available=MerchantRow.bags_available + 1)
            )

    async def record_sale(self, merchant_id: str) -> None:
        async with remote_session() as session:
            await session.execute(
                update(MerchantRow)
                .where(MerchantRow.id == merchant_id)
                .values(total_saved=MerchantRow.total_saved + 1)
            )

    async def approve(self, merchant_id: str) -> Verification:
        """Approve the merchant's verification record (see VerificationRepository.approve)."""
        async with remote_session() as session:
            row = await _verification_for_merchant(session, merchant_id)
            return await _review(session, row, merchant_id, status=VerificationStatus.APPROVED)

    async def reject(self, merchant_id: str, reason: str) -> Verification:
        """Reject the merchant's pending verification with `reason`."""
        async with remote_session() as session:
            row = await _verification_for_merchant(session, merchant_id)
            return await _review(session, row, merchant_id, status=VerificationStatus.REJECTED, reason=reason)


class OrderRepository:
    async def create(self, order: Order) -> Order:
        async with remote_session() as session:
            row = OrderRow(**order_to_wire(order).model_dump())
            session.add(row)
            await session.flush()
            return _order(row)

    async def get(self, order_id: str) -> Order | None:
        async with remote_session() as session:
            row = await session.get(OrderRow, order_id)
            return _order(row) if row else None

    async def complete(self, order_id: str) -> bool:
        """pending -> completed. False if the order was no longer pending."""
        async with remote_session() as session:
            result = await session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id, OrderRow.status == OrderStatus.PENDING.value)
                .values(status=OrderStatus.COMPLETED.value, completed_at=_now())
            )
            return result.rowcount == 1

    async def cancel(self, order_id: str, merchant_id: str) -> bool:
        """pending -> cancelled and give the bag back, in one transaction."""
        async with remote_session() as session:
            result = await session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id, OrderRow.status == OrderStatus.PENDING.value)
                .values(status=OrderStatus.CANCELLED.value, cancelled_at=_now())
            )
            if result.rowcount != 1:
                return False
            await session.execute(
                update(MerchantRow)
                .where(MerchantRow.id == merchant_id)
                .values(bags_available=MerchantRow.bags_available + 1)
            )
            return True

    async def get_merchant_orders(self, merchant_id: str) -> list[Order]:
        async with remote_session() as session:
            result = await session.execute(
                select(OrderRow)
                .where(OrderRow.merchant_id == merchant_id)
                .order_by(OrderRow.created_at.desc())
            )
            return [_order(row) for row in result.scalars()]

    async def get_customer_orders(self, customer_id: str) -> list[Order]:
        async with remote_session() as session:
            result = await session.execute(
                select(OrderRow)
                .where(OrderRow.customer_id == customer_id)
                .order_by(OrderRow.created_at.desc())
            )
            return [_order(row) for row in result.scalars()]


class VerificationRepository:
    async def submit(self, verification: Verification) -> Verification:
        """Upsert by merchant id and flag the merchant as pending review.

        The stored status is re-read under a row lock in the same transaction,
        so an approval that committed while documents were uploading wins.

        Raises:
            InvalidTransition: The stored record no longer accepts a submission.
        """
        values = verification_to_wire(verification).model_dump(exclude={"id", "merchant_id"})
        async with remote_session() as session:
            result = await session.execute(
                select(VerificationRow)
                .where(VerificationRow.merchant_id == verification.merchant_id)
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = VerificationRow(
                    id=verification.id or str(uuid4()),
                    merchant_id=verification.merchant_id,
                )
                session.add(row)
            else:
                check_transition(VerificationStatus(row.status), VerificationStatus(values["status"]))
            for name, value in values.items():
                setattr(row, name, value)
            await _set_merchant_verification(
                session,
                verification.merchant_id,
                verified=False,
                status=VerificationStatus(values["status"]),
            )
            await session.flush()
            return _verification(row)

    async def approve(self, verification_id: str, merchant_id: str) -> Verification:
        async with remote_session() as session:
            row = await session.get(VerificationRow, verification_id, with_for_update=True)
            return await _review(
                session, row, merchant_id, status=VerificationStatus.APPROVED, verification_id=verification_id
            )

    async def reject(self, verification_id: str, merchant_id: str, reason: str) -> Verification:
        async with remote_session() as session:
            row = await session.get(VerificationRow, verification_id, with_for_update=True)
            return await _review(
                session,
                row,
                merchant_id,
                status=VerificationStatus.REJECTED,
                reason=reason,
                verification_id=verification_id,
            )

    async def get(self, verification_id: str) -> Verification | None:
        async with remote_session() as session:
            row = await session.get(VerificationRow, verification_id)
            return _verification(row) if row else None

    async def get_mine(self, merchant_id: str) -> Verification | None:
        async with remote_session() as session:
            result = await session.execute(
                select(VerificationRow).where(VerificationRow.merchant_id == merchant_id)
            )
            row = result.scalar_one_or_none()
            return _verification(row) if row else None

    async def get_all(self, status: VerificationStatus | None = None) -> list[Verification]:
        async with remote_session() as session:
            query = select(VerificationRow).order_by(VerificationRow.submitted_at.desc())
            if status is not None:
                query = query.where(VerificationRow.status == status.value)
            result = await session.execute(query)
            return [_verification(row) for row in result.scalars()]


class FavoriteRepository:
    async def get_all(self, user_id: str) -> list[str]:
        async with remote_session() as session:
            result = await session.execute(
                select(FavoriteRow.merchant_id)
                .where(FavoriteRow.user_id == user_id)
                .order_by(FavoriteRow.id)
            )
            return [str(merchant_id) for merchant_id in result.scalars()]

    async def toggle(self, user_id: str, merchant_id: str) -> bool:
        """Flip membership. True when the merchant is now a favorite."""
        async with remote_session() as session:
            result = await session.execute(
                delete(FavoriteRow).where(
                    FavoriteRow.user_id == user_id,
                    FavoriteRow.merchant_id == merchant_id,
                )
            )
            if result.rowcount:
                return False
            session.add(FavoriteRow(user_id=user_id, merchant_id=merchant_id))
            await session.flush()
            return True


class RemoteStore:
    """Entry point bundling the repositories."""

    def __init__(self) -> None:
        self.merchants = MerchantRepository()
        self.orders = OrderRepository()
        self.verifications = VerificationRepository()
        self.favorites = FavoriteRepository()


_remote_store: RemoteStore | None = None


def get_remote_store() -> RemoteStore:
    global _remote_store
    if _remote_store is None:
        _remote_store = RemoteStore()
    return _remote_store
