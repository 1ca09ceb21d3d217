"""Schemas for the consumer listing endpoint (/v1/listing)."""

from typing import Literal

from pydantic import BaseModel, Field

from savebags.schemas.merchant import Coordinate, Merchant


class ListingEntry(BaseModel):
    """A merchant as shown in the consumer listing."""

    merchant: Merchant
    distance: float | None = None
    prominence: Literal["standard", "reduced"] = "standard"
    badge: Literal["verified", "pending"] = "verified"
    discount: int = 0
    is_new: bool = Field(alias="isNew", default=False)

    model_config = {"populate_by_name": True}


class ListingResponse(BaseModel):
    """Response payload for GET /v1/listing."""

    entries: list[ListingEntry]
    count: int = Field(ge=0)
    coordinate: Coordinate | None = None
