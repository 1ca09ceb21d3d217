"""Order (reservation) schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """Order lifecycle. Completed and cancelled are terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class QrPayload(BaseModel):
    """Content encoded in the pickup QR.

    `code` is the customer-facing pickup code; `orderCode` is the longer
    order code shown on receipts.
    """

    order_id: str = Field(alias="orderId")
    merchant_id: str = Field(alias="merchantId")
    timestamp: int
    code: str
    order_code: str = Field(alias="orderCode")

    model_config = {"populate_by_name": True}


class Order(BaseModel):
    """A single-bag reservation."""

    id: str
    merchant_id: str = Field(alias="merchantId")
    merchant_name: str = Field(alias="merchantName", default="")
    customer_id: str = Field(alias="customerId")
    customer_name: str = Field(alias="customerName", default="")
    code: str
    order_code: str = Field(alias="orderCode")
    qr_data: str = Field(alias="qrData")
    bags: int = 1
    amount: float
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(alias="createdAt")
    completed_at: datetime | None = Field(alias="completedAt", default=None)
    cancelled_at: datetime | None = Field(alias="cancelledAt", default=None)

    model_config = {"populate_by_name": True}
