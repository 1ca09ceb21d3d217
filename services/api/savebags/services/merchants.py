"""Merchant profile service.

Owner-side operations: signup (draft merchant), profile edits, deactivation.
Stock changes go through the reservation engine so they share its per-merchant
serialization.

Write order is local cache first, then remote. A remote failure on an edit is
logged and the local record stays authoritative until the next reconciliation.
"""

from datetime import datetime, timezone
import logging
import math
from typing import Any
from uuid import uuid4

from savebags.schemas.merchant import (
    CATEGORIES,
    DIETARY_OPTIONS,
    Merchant,
    MerchantSignup,
    MerchantUpdate,
    VerificationStatus,
)
from savebags.services.errors import InvalidMerchantProfile, NotFound, RemoteUnavailable
from savebags.stores.local_cache import (
    LocalCache,
    add_id,
    load_local_overlay,
    merchant_record,
    pending_sync_merchants,
    store_local_merchant,
)
from savebags.stores.remote import RemoteStore

logger = logging.getLogger("uvicorn.error")


def discount_percentage(original_price: float, save_price: float) -> int:
    """Percent saved, rounded half up: 300 -> 99 gives 67."""
    if original_price <= 0:
        return 0
    return int(math.floor(100 * (original_price - save_price) / original_price + 0.5))


def is_listable(merchant: Merchant) -> bool:
    return merchant.is_active and bool(merchant.verified)


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def validate_profile(merchant: Merchant) -> None:
    """Check pricing, pickup window, stock and rating rules.

    Raises:
        InvalidMerchantProfile: With a field -> message map in `detail["fields"]`.
    """
    errors: dict[str, str] = {}

    if not merchant.name.strip():
        errors["name"] = "Name is required"
    if merchant.save_price <= 0:
        errors["savePrice"] = "Save price must be positive"
    if merchant.original_price <= merchant.save_price:
        errors["originalPrice"] = "Original price must be greater than save price"
    if merchant.bags_available < 0:
        errors["bagsAvailable"] = "Bags available cannot be negative"
    if not 0 <= merchant.rating <= 5:
        errors["rating"] = "Rating must be between 0 and 5"
    if merchant.category not in CATEGORIES:
        errors["category"] = f"Unknown category: {merchant.category}"
    unknown_diets = [d for d in merchant.dietary if d not in DIETARY_OPTIONS]
    if unknown_diets:
        errors["dietary"] = f"Unknown dietary tags: {', '.join(unknown_diets)}"

    try:
        start, end = _minutes(merchant.pickup.start), _minutes(merchant.pickup.end)
    except ValueError:
        errors["pickup"] = "Pickup times must be HH:MM"
    else:
        if not (0 <= start < 24 * 60 and 0 < end <= 24 * 60):
            errors["pickup"] = "Pickup times must be within the day"
        elif start >= end:
            errors["pickup"] = "Pickup window must start before it ends"

    if errors:
        raise InvalidMerchantProfile("Invalid merchant profile", detail={"fields": errors})


def _apply(merchant: Merchant, changes: MerchantUpdate) -> Merchant:
    updates: dict[str, Any] = changes.model_dump(exclude_unset=True)
    return Merchant.model_validate({**merchant.model_dump(), **updates})


async def create_draft_merchant(
    owner_id: str,
    signup: MerchantSignup,
    *,
    remote: RemoteStore,
    cache: LocalCache,
) -> Merchant:
    """Create the merchant record for a new business account.

    Starts unverified with status draft. If the remote store is unreachable the
    record is kept locally, flagged pending_sync, and pushed later by
    reconciliation.
    """
    merchant = _apply(
        Merchant(
            id=str(uuid4()),
            owner_id=owner_id,
            name=signup.name,
            verified=False,
            verification_status=VerificationStatus.DRAFT,
            created_at=datetime.now(timezone.utc),
        ),
        signup,
    )
    validate_profile(merchant)

    try:
        merchant = await remote.merchants.create(merchant)
    except RemoteUnavailable as e:
        logger.warning(f"[merchants] remote create failed for owner={owner_id}, keeping local copy: {e}")
        merchant = merchant.model_copy(update={"pending_sync": True})
        await cache.update(pending_sync_merchants(), [], lambda ids: add_id(ids, merchant.id))

    await store_local_merchant(cache, merchant)
    logger.info(f"[merchants] created draft merchant {merchant.id} for owner={owner_id}")
    return merchant


async def get_my_merchant(owner_id: str, *, remote: RemoteStore, cache: LocalCache) -> Merchant:
    """Owner's merchant. The local record wins once there is one.

    Within a session the local record is the source of truth for stock and
    profile; only the review flags set by an admin are taken from the remote
    row. Everything else moves back to the remote copy in reconciliation.

    Raises:
        NotFound: If the owner has no merchant anywhere.
    """
    try:
        stored = await remote.merchants.get_mine(owner_id)
    except RemoteUnavailable as e:
        logger.warning(f"[merchants] remote lookup failed for owner={owner_id}: {e}")
        stored = None

    local = await _local_for_owner(owner_id, cache)
    if local is None:
        if stored is None:
            raise NotFound("No merchant for this account", detail={"ownerId": owner_id})
        async with cache.lock(merchant_record(stored.id)):
            current = await cache.read(merchant_record(stored.id), None)
            if current is None:
                await store_local_merchant(cache, stored)
            return current or stored
    if stored is None or local.pending_sync:
        return local
    return await _take_review_flags(local, stored, cache)


async def _take_review_flags(local: Merchant, stored: Merchant, cache: LocalCache) -> Merchant:
    async with cache.lock(merchant_record(local.id)):
        current = await _freshest(local, cache)
        if (current.verified, current.verification_status) == (stored.verified, stored.verification_status):
            return current
        current = current.model_copy(
            update={"verified": stored.verified, "verification_status": stored.verification_status}
        )
        await store_local_merchant(cache, current)
        return current


async def _local_for_owner(owner_id: str, cache: LocalCache) -> Merchant | None:
    for merchant in await load_local_overlay(cache):
        if merchant.owner_id == owner_id:
            return merchant
    return None


async def _freshest(merchant: Merchant, cache: LocalCache) -> Merchant:
    local = await cache.read(merchant_record(merchant.id), None)
    return local if local is not None else merchant


async def _persist(merchant: Merchant, *, remote: RemoteStore, cache: LocalCache, op: str) -> None:
    await store_local_merchant(cache, merchant)
    if merchant.pending_sync:
        return
    try:
        await remote.merchants.update(merchant)
    except (RemoteUnavailable, NotFound) as e:
        logger.warning(f"[merchants] remote {op} failed for {merchant.id}: {e}")


async def update_profile(
    merchant: Merchant,
    changes: MerchantUpdate,
    *,
    remote: RemoteStore,
    cache: LocalCache,
) -> Merchant:
    """Apply owner edits to the freshest local copy of `merchant`.

    Runs under the merchant record lock the reservation engine uses, so a
    reserve or cancel in between is not overwritten.
    """
    async with cache.lock(merchant_record(merchant.id)):
        updated = _apply(await _freshest(merchant, cache), changes)
        validate_profile(updated)
        await _persist(updated, remote=remote, cache=cache, op="update")
    return updated


async def deactivate(merchant: Merchant, *, remote: RemoteStore, cache: LocalCache) -> Merchant:
    """Hide the merchant from listings. Records are never hard-deleted."""
    async with cache.lock(merchant_record(merchant.id)):
        updated = (await _freshest(merchant, cache)).model_copy(update={"is_active": False})
        await _persist(updated, remote=remote, cache=cache, op="deactivate")
    logger.info(f"[merchants] deactivated {merchant.id}")
    return updated
