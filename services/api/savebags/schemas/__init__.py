"""Pydantic schemas for domain records and API request/response validation."""

from savebags.schemas.common import ErrorDetail, ErrorResponse, OkResponse
from savebags.schemas.listing import ListingEntry, ListingResponse
from savebags.schemas.merchant import Coordinate, Merchant, PickupWindow, VerificationStatus
from savebags.schemas.order import Order, OrderStatus, QrPayload
from savebags.schemas.verification import (
    DOCUMENT_SLOTS,
    REQUIRED_SLOTS,
    ContactInfo,
    DocumentRef,
    DraftDocument,
    Verification,
    VerificationDraft,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "OkResponse",
    "ListingEntry",
    "ListingResponse",
    "Coordinate",
    "Merchant",
    "PickupWindow",
    "VerificationStatus",
    "Order",
    "OrderStatus",
    "QrPayload",
    "DOCUMENT_SLOTS",
    "REQUIRED_SLOTS",
    "ContactInfo",
    "DocumentRef",
    "DraftDocument",
    "Verification",
    "VerificationDraft",
]
