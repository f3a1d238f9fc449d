# storefront/schemas/order.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from storefront.models.order import OrderStatus
from storefront.schemas.common import Pagination
from storefront.schemas.product import ProductSummary

SortOrder = Literal["asc", "desc"]
OrderSortField = Literal["created_at", "updated_at", "total", "status", "order_no"]


class OrderItemCreate(SQLModel):
    product_id: uuid.UUID
    quantity: int = Field(gt=0)


class OrderCreate(SQLModel):
    """
    Payload for checkout.

    Only product ids and quantities are accepted; prices are always read
    from the catalog at order time.
    """

    model_config = ConfigDict(extra="forbid")

    items: list[OrderItemCreate] = Field(min_length=1)
    shipping_address: dict[str, Any] | None = None
    billing_address: dict[str, Any] | None = None
    payment_method: str | None = Field(default=None, max_length=50)

    @field_validator("payment_method")
    @classmethod
    def normalize_payment_method(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus


class PaymentConfirmation(SQLModel):
    """
    Payment gateway callback payload.
    """

    order_no: str = Field(min_length=1)
    transaction_id: str = Field(min_length=1, max_length=255)
    payment_timestamp: datetime | None = None
    notes: str | None = None


class OrderListQuery(SQLModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: OrderStatus | None = None
    sort_by: OrderSortField = "created_at"
    sort_order: SortOrder = "desc"


class AdminOrderListQuery(OrderListQuery):
    user_id: uuid.UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    product: ProductSummary | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderRead(SQLModel):
    """
    Full order view including items.
    """

    id: uuid.UUID
    order_no: str
    user_id: uuid.UUID
    status: OrderStatus
    total: Decimal
    items: list[OrderItemRead]
    shipping_address: dict[str, Any] | None = None
    billing_address: dict[str, Any] | None = None
    payment_method: str | None = None
    transaction_id: str | None = None
    payment_timestamp: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class OrderSummary(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    order_no: str
    status: OrderStatus
    total: Decimal
    item_count: int
    created_at: datetime


class AdminOrderLine(SQLModel):
    product_name: str | None
    quantity: int
    unit_price: Decimal


class AdminOrderSummary(OrderSummary):
    user_id: uuid.UUID
    items: list[AdminOrderLine]
    updated_at: datetime


class OrderPage(SQLModel):
    orders: list[OrderSummary]
    pagination: Pagination


class AdminOrderPage(SQLModel):
    orders: list[AdminOrderSummary]
    pagination: Pagination
