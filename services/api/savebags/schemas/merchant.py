"""Merchant domain schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from savebags.services.errors import InvalidTransition


class VerificationStatus(str, Enum):
    """Where a merchant stands in the verification workflow."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# draft -> pending on submission, pending -> approved | rejected on review,
# rejected -> pending on resubmission. Pending may be overwritten and approved
# may be re-approved; nothing leaves approved.
ALLOWED_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.DRAFT: frozenset({VerificationStatus.PENDING}),
    VerificationStatus.PENDING: frozenset(
        {VerificationStatus.PENDING, VerificationStatus.APPROVED, VerificationStatus.REJECTED}
    ),
    VerificationStatus.REJECTED: frozenset({VerificationStatus.PENDING}),
    VerificationStatus.APPROVED: frozenset({VerificationStatus.APPROVED}),
}


def check_transition(current: VerificationStatus, target: VerificationStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot move verification from {current.value} to {target.value}",
            detail={"from": current.value, "to": target.value},
        )


CATEGORIES = ("bakery", "restaurant", "cafe", "grocery", "vegan", "organic", "premium")
DIETARY_OPTIONS = ("vegetarian", "vegan", "organic", "gluten-free", "pescatarian")


class Coordinate(BaseModel):
    """A (lat, lng) pair in degrees."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class PickupWindow(BaseModel):
    """Same-day pickup window, HH:MM local time."""

    start: str = Field(default="20:00", pattern=r"^\d{2}:\d{2}$")
    end: str = Field(default="22:00", pattern=r"^\d{2}:\d{2}$")


class Merchant(BaseModel):
    """A business offering surplus bags.

    `verified` is None when the record carries no verification data at all;
    listing treats that case as pending review.
    """

    id: str
    owner_id: str = Field(alias="ownerId")
    name: str
    type: str = ""
    category: str = "restaurant"
    description: str = ""
    address: str = ""
    location: Coordinate | None = None
    phone: str = ""
    email: str = ""
    image: str | None = None
    original_price: float = Field(alias="originalPrice", default=300)
    save_price: float = Field(alias="savePrice", default=99)
    bags_available: int = Field(alias="bagsAvailable", default=5)
    pickup: PickupWindow = Field(default_factory=PickupWindow)
    is_active: bool = Field(alias="isActive", default=True)
    verified: bool | None = None
    verification_status: VerificationStatus = Field(
        alias="verificationStatus",
        default=VerificationStatus.DRAFT,
    )
    rating: float = 0.0
    reviews: int = 0
    total_saved: int = Field(alias="totalSaved", default=0)
    dietary: list[str] = Field(default_factory=list)
    distance: float | None = None
    created_at: datetime | None = Field(alias="createdAt", default=None)

    # Local-only bookkeeping for records the remote store has not accepted yet
    pending_sync: bool = Field(alias="pendingSync", default=False)
    sync_attempts: int = Field(alias="syncAttempts", default=0)

    model_config = {"populate_by_name": True}


class MerchantUpdate(BaseModel):
    """Owner-editable profile fields. Unset fields are left untouched."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    type: str | None = None
    category: str | None = None
    description: str | None = None
    address: str | None = None
    location: Coordinate | None = None
    phone: str | None = None
    email: str | None = None
    image: str | None = None
    original_price: float | None = Field(alias="originalPrice", default=None)
    save_price: float | None = Field(alias="savePrice", default=None)
    pickup: PickupWindow | None = None
    dietary: list[str] | None = None

    model_config = {"populate_by_name": True}


class MerchantSignup(MerchantUpdate):
    """Profile captured at business signup."""

    name: str = Field(min_length=1, max_length=200)
