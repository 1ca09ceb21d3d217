"""Merchant model.

A business listing surplus bags. Only active and verified merchants are
visible to consumers.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from savebags.stores.postgres import Base


def generate_merchant_id() -> str:
    """Generate unique merchant ID."""
    return str(uuid4())


class MerchantRow(Base):
    """Merchant profile, stock and verification flags."""

    __tablename__ = "merchants"
    __table_args__ = (CheckConstraint("bags_available >= 0", name="ck_merchants_bags_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_merchant_id)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)

    # Profile
    name: Mapped[str] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(100), default="")
    category: Mapped[str] = mapped_column(String(50), default="restaurant", index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    address: Mapped[str] = mapped_column(String(500), default="")
    lat: Mapped[float | None] = mapped_column()
    lng: Mapped[float | None] = mapped_column()
    phone: Mapped[str] = mapped_column(String(50), default="")
    email: Mapped[str] = mapped_column(String(200), default="")
    image: Mapped[str | None] = mapped_column(Text)
    dietary: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Offer
    original_price: Mapped[float] = mapped_column(default=300)
    save_price: Mapped[float] = mapped_column(default=99)
    bags_available: Mapped[int] = mapped_column(default=5)
    pickup_start: Mapped[str] = mapped_column(String(5), default="20:00")
    pickup_end: Mapped[str] = mapped_column(String(5), default="22:00")
    distance: Mapped[float | None] = mapped_column()  # stored approximate km

    # Visibility & verification
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    verified: Mapped[bool | None] = mapped_column(default=False, index=True)
    verification_status: Mapped[str | None] = mapped_column(String(20), default="draft")

    # Stats
    rating: Mapped[float] = mapped_column(default=0.0)
    reviews: Mapped[int] = mapped_column(default=0)
    total_saved: Mapped[int] = mapped_column(default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<MerchantRow {self.name} bags={self.bags_available}>"
