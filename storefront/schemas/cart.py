# storefront/schemas/cart.py
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import field_validator
from sqlmodel import SQLModel, Field

from storefront.schemas.product import ProductSummary


class CartItemCreate(SQLModel):
    """
    Payload for adding to cart.
    """

    product_id: uuid.UUID
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart item.

    quantity=0 removes the line.
    """

    quantity: int = Field(ge=0)


class CartMerge(SQLModel):
    """
    Payload for folding a guest cart into the signed-in user's cart.
    """

    guest_session_id: str = Field(min_length=1, max_length=128)

    @field_validator("guest_session_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("guest_session_id cannot be empty")
        return v


class CartItemRead(SQLModel):
    """
    Read model for a single cart item, including total_price.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    product: ProductSummary
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class CartRead(SQLModel):
    """
    Full cart response model with totals.
    """

    id: uuid.UUID
    user_id: uuid.UUID | None = None
    session_id: str | None = None
    items: list[CartItemRead]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    item_count: int
    updated_at: datetime
