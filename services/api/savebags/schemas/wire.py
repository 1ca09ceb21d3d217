"""Flat snake_case records as stored in the remote database.

Domain objects never touch ORM rows directly: rows are read into these wire
records, then mapped with the explicit *_to_wire / *_from_wire functions below.
A new field means a change in exactly these functions.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from savebags.schemas.merchant import Coordinate, Merchant, PickupWindow, VerificationStatus
from savebags.schemas.order import Order, OrderStatus
from savebags.schemas.verification import DocumentRef, Verification


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MerchantWire(BaseModel):
    id: str
    owner_id: str
    name: str
    type: str = ""
    category: str = "restaurant"
    description: str = ""
    address: str = ""
    lat: float | None = None
    lng: float | None = None
    phone: str = ""
    email: str = ""
    image: str | None = None
    original_price: float = 300
    save_price: float = 99
    bags_available: int = 5
    pickup_start: str = "20:00"
    pickup_end: str = "22:00"
    is_active: bool = True
    verified: bool | None = None
    verification_status: str | None = None
    rating: float = 0.0
    reviews: int = 0
    total_saved: int = 0
    dietary: list[str] = Field(default_factory=list)
    distance: float | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class OrderWire(BaseModel):
    id: str
    merchant_id: str
    merchant_name: str = ""
    customer_id: str
    customer_name: str = ""
    code: str
    order_code: str
    qr_data: str
    bags: int = 1
    amount: float
    status: str = "pending"
    created_at: datetime
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}


class VerificationWire(BaseModel):
    id: str
    merchant_id: str
    contact_name: str = ""
    contact_phone: str = ""
    tax_id: str = ""
    website: str | None = None
    documents: dict[str, dict[str, Any]] = Field(default_factory=dict)
    status: str = "draft"
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None

    model_config = {"from_attributes": True}


# ============================================================
# Merchant
# ============================================================


def merchant_to_wire(merchant: Merchant) -> MerchantWire:
    return MerchantWire(
        id=merchant.id,
        owner_id=merchant.owner_id,
        name=merchant.name,
        type=merchant.type,
        category=merchant.category,
        description=merchant.description,
        address=merchant.address,
        lat=merchant.location.lat if merchant.location else None,
        lng=merchant.location.lng if merchant.location else None,
        phone=merchant.phone,
        email=merchant.email,
        image=merchant.image,
        original_price=merchant.original_price,
        save_price=merchant.save_price,
        bags_available=merchant.bags_available,
        pickup_start=merchant.pickup.start,
        pickup_end=merchant.pickup.end,
        is_active=merchant.is_active,
        verified=merchant.verified,
        verification_status=merchant.verification_status.value,
        rating=merchant.rating,
        reviews=merchant.reviews,
        total_saved=merchant.total_saved,
        dietary=list(merchant.dietary),
        distance=merchant.distance,
        created_at=merchant.created_at,
    )


def merchant_from_wire(wire: MerchantWire) -> Merchant:
    location = None
    if wire.lat is not None and wire.lng is not None:
        location = Coordinate(lat=wire.lat, lng=wire.lng)
    return Merchant(
        id=str(wire.id),
        owner_id=wire.owner_id,
        name=wire.name,
        type=wire.type,
        category=wire.category,
        description=wire.description,
        address=wire.address,
        location=location,
        phone=wire.phone,
        email=wire.email,
        image=wire.image,
        original_price=wire.original_price,
        save_price=wire.save_price,
        bags_available=wire.bags_available,
        pickup=PickupWindow(start=wire.pickup_start, end=wire.pickup_end),
        is_active=wire.is_active,
        verified=wire.verified,
        verification_status=VerificationStatus(wire.verification_status or "draft"),
        rating=wire.rating,
        reviews=wire.reviews,
        total_saved=wire.total_saved,
        dietary=list(wire.dietary or []),
        distance=wire.distance,
        created_at=_aware(wire.created_at),
    )


# ============================================================
# Order
# ============================================================


def order_to_wire(order: Order) -> OrderWire:
    return OrderWire(
        id=order.id,
        merchant_id=order.merchant_id,
        merchant_name=order.merchant_name,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        code=order.code,
        order_code=order.order_code,
        qr_data=order.qr_data,
        bags=order.bags,
        amount=order.amount,
        status=order.status.value,
        created_at=order.created_at,
        completed_at=order.completed_at,
        cancelled_at=order.cancelled_at,
    )


def order_from_wire(wire: OrderWire) -> Order:
    return Order(
        id=str(wire.id),
        merchant_id=str(wire.merchant_id),
        merchant_name=wire.merchant_name,
        customer_id=wire.customer_id,
        customer_name=wire.customer_name,
        code=wire.code,
        order_code=wire.order_code,
        qr_data=wire.qr_data,
        bags=wire.bags,
        amount=wire.amount,
        status=OrderStatus(wire.status),
        created_at=_aware(wire.created_at),
        completed_at=_aware(wire.completed_at),
        cancelled_at=_aware(wire.cancelled_at),
    )


# ============================================================
# Verification
# ============================================================


def verification_to_wire(verification: Verification) -> VerificationWire:
    return VerificationWire(
        id=verification.id,
        merchant_id=verification.merchant_id,
        contact_name=verification.contact_name,
        contact_phone=verification.contact_phone,
        tax_id=verification.tax_id,
        website=verification.website,
        documents={
            slot: {"name": doc.name, "reference": doc.reference, "mime_type": doc.mime_type}
            for slot, doc in verification.documents.items()
        },
        status=verification.status.value,
        submitted_at=verification.submitted_at,
        reviewed_at=verification.reviewed_at,
        rejection_reason=verification.rejection_reason,
    )


def verification_from_wire(wire: VerificationWire) -> Verification:
    return Verification(
        id=str(wire.id),
        merchant_id=str(wire.merchant_id),
        contact_name=wire.contact_name,
        contact_phone=wire.contact_phone,
        tax_id=wire.tax_id,
        website=wire.website,
        documents={
            slot: DocumentRef(
                name=str(doc.get("name", "")),
                reference=doc.get("reference"),
                mime_type=str(doc.get("mime_type") or "application/octet-stream"),
            )
            for slot, doc in (wire.documents or {}).items()
        },
        status=VerificationStatus(wire.status),
        submitted_at=_aware(wire.submitted_at),
        reviewed_at=_aware(wire.reviewed_at),
        rejection_reason=wire.rejection_reason,
    )
