# storefront/models/order.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, CheckConstraint, Column
from sqlmodel import SQLModel, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(SQLModel, table=True):
    """
    Customer order.

    Items and total are fixed at creation. Only status and the payment
    fields (transaction_id, payment_timestamp, notes) change afterwards.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_no: str = Field(
        max_length=64,
        unique=True,
        index=True,
        description="Public order number, e.g. ORD-1718000000000-3FA9C01BE",
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        index=True,
        description="Order status lifecycle",
    )

    total: Decimal = Field(
        max_digits=12,
        decimal_places=2,
        description="Sum of unit_price x quantity at creation",
    )

    shipping_address: dict | None = Field(default=None, sa_column=Column(JSON))
    billing_address: dict | None = Field(default=None, sa_column=Column(JSON))
    payment_method: str | None = Field(default=None, max_length=50)

    # Set by payment confirmation
    transaction_id: str | None = Field(default=None, max_length=255)
    payment_timestamp: datetime | None = None
    notes: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order.

    unit_price is the product price at the moment the order was placed.
    """

    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    unit_price: Decimal = Field(
        max_digits=10,
        decimal_places=2,
        description="Unit price at time of order",
    )
