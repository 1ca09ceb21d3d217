"""Order model.

One row per reserved bag. `status` moves pending -> completed or
pending -> cancelled and never leaves a terminal state.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from savebags.stores.postgres import Base


class OrderRow(Base):
    """A single-bag reservation."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    merchant_id: Mapped[str] = mapped_column(ForeignKey("merchants.id"), index=True)
    merchant_name: Mapped[str] = mapped_column(String(200), default="")
    customer_id: Mapped[str] = mapped_column(String(64), index=True)
    customer_name: Mapped[str] = mapped_column(String(200), default="")

    # Pickup
    code: Mapped[str] = mapped_column(String(16), index=True)
    order_code: Mapped[str] = mapped_column(String(32))
    qr_data: Mapped[str] = mapped_column(Text)

    bags: Mapped[int] = mapped_column(default=1)
    amount: Mapped[float] = mapped_column()
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<OrderRow {self.id} {self.status}>"
