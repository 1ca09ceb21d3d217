"""Reservation endpoints.

POST /v1/orders                - reserve one bag
GET  /v1/orders/mine           - caller's orders, newest first
POST /v1/orders/{id}/cancel    - customer cancels (requires confirmed=true)
POST /v1/orders/{id}/collect   - merchant marks the order as picked up
"""

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from savebags.routes.deps import (
    current_identity,
    current_merchant,
    get_reservation_engine,
)
from savebags.schemas import Merchant, Order
from savebags.services.errors import NotFound
from savebags.services.identity import Identity
from savebags.services.reservations import ReservationEngine

router = APIRouter()


class ReserveRequest(BaseModel):
    merchant_id: str = Field(alias="merchantId", min_length=1)

    model_config = {"populate_by_name": True}


class CancelRequest(BaseModel):
    confirmed: bool = False


@router.post("", response_model=Order, status_code=201)
async def reserve(
    request: ReserveRequest,
    identity: Identity = Depends(current_identity),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> Order:
    merchant = await engine.load_merchant(request.merchant_id)
    if merchant is None:
        raise NotFound("Merchant not found", detail={"merchantId": request.merchant_id})
    return await engine.reserve(merchant, identity)


@router.get("/mine", response_model=list[Order])
async def my_orders(
    identity: Identity = Depends(current_identity),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> list[Order]:
    return await engine.get_customer_orders(identity.id)


@router.post("/{order_id}/cancel", response_model=Order)
async def cancel(
    request: CancelRequest,
    order_id: str = Path(min_length=1),
    identity: Identity = Depends(current_identity),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> Order:
    return await engine.cancel_reservation(order_id, customer_id=identity.id, confirmed=request.confirmed)


@router.post("/{order_id}/collect", response_model=Order)
async def collect(
    order_id: str = Path(min_length=1),
    merchant: Merchant = Depends(current_merchant),
    engine: ReservationEngine = Depends(get_reservation_engine),
) -> Order:
    return await engine.mark_collected(order_id, merchant_id=merchant.id)
