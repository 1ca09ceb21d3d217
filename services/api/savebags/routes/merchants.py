"""Merchant (business owner) endpoints under /v1/merchants/me."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from savebags.routes.deps import (
    current_merchant,
    get_cache,
    get_remote,
    get_reservation_engine,
    require_role,
)
from savebags.schemas import Merchant, Order
from savebags.schemas.merchant import MerchantSignup, MerchantUpdate
from savebags.services.errors import NotFound
from savebags.services.identity import Identity, Role
from savebags.services.merchants import create_draft_merchant, deactivate, get_my_merchant, update_profile
from savebags.services.reservations import ReservationEngine
from savebags.stores.local_cache import LocalCache
from savebags.stores.remote import RemoteStore

router = APIRouter()


class StockRequest(BaseModel):
    bags_available: int = Field(alias="bagsAvailable")

    model_config = {"populate_by_name": True}


class ScanRequest(BaseModel):
    scan_result: str = Field(alias="scanResult", min_length=1)

    model_config = {"populate_by_name": True}


class PickupCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)


@router.get("/me", response_model=Merchant)
async def get_me(merchant: Merchant = Depends(current_merchant)) -> Merchant:
    return merchant


@router.post("/me", response_model=Merchant, status_code=201)
async def create_me(
    signup: MerchantSignup,
    identity: Identity = Depends(require_role(Role.MERCHANT)),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> Merchant:
    """Create the merchant record for a business account that has none yet."""
    try:
        existing = await get_my_merchant(identity.id, remote=remote, cache=cache)
    except NotFound:
        return await create_draft_merchant(identity.id, signup, remote=remote, cache=cache)
    return existing


@router.patch("/me", response_model=Merchant)
async def patch_me(
    changes: MerchantUpdate,
    merchant: Merchant = Depends(current_merchant),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> Merchant:
    return await update_profile(merchant, changes, remote=remote, cache=cache)


@router.put("/me/stock", response_model=Merchant)
async def put_stock(
    request: StockRequest,
    merchant: Merchant = Depends(current_merchant),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> Merchant:
    return await engine.set_stock(merchant, request.bags_available)


@router.post("/me/deactivate", response_model=Merchant)
async def post_deactivate(
    merchant: Merchant = Depends(current_merchant),
    remote: RemoteStore = Depends(get_remote),
    cache: LocalCache = Depends(get_cache),
) -> Merchant:
    return await deactivate(merchant, remote=remote, cache=cache)


@router.get("/me/orders", response_model=list[Order])
async def get_orders(
    merchant: Merchant = Depends(current_merchant),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> list[Order]:
    return await engine.get_merchant_orders(merchant.id)


@router.get("/me/dashboard")
async def get_dashboard(
    merchant: Merchant = Depends(current_merchant),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> dict:
    stats = await engine.dashboard(merchant.id)
    return {"merchantId": merchant.id, "bagsAvailable": merchant.bags_available, **asdict(stats)}


@router.post("/me/scan", response_model=Order)
async def post_scan(
    request: ScanRequest,
    merchant: Merchant = Depends(current_merchant),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> Order:
    """Confirm pickup from a scanned QR payload."""
    return await engine.confirm_by_qr_scan(merchant.id, request.scan_result)


@router.post("/me/pickup-code", response_model=Order)
async def post_pickup_code(
    request: PickupCodeRequest,
    merchant: Merchant = Depends(current_merchant),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> Order:
    """Confirm pickup from a manually typed pickup code."""
    return await engine.confirm_by_pickup_code(merchant.id, request.code)
