# storefront/schemas/product.py
import uuid
from decimal import Decimal

from sqlmodel import SQLModel

from storefront.models.product import Category, Product


class CategoryRef(SQLModel):
    id: uuid.UUID
    name: str
    slug: str


class ProductSummary(SQLModel):
    """
    Product fields embedded in cart and order lines.
    """

    id: uuid.UUID
    name: str
    price: Decimal
    sku: str
    images: list[str] = []
    category: CategoryRef | None = None

    @classmethod
    def from_models(cls, product: Product, category: Category | None) -> "ProductSummary":
        return cls(
            id=product.id,
            name=product.name,
            price=product.price,
            sku=product.sku,
            images=list(product.images or []),
            category=(
                CategoryRef(id=category.id, name=category.name, slug=category.slug)
                if category is not None
                else None
            ),
        )
