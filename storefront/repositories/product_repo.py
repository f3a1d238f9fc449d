# storefront/repositories/product_repo.py
import uuid
from typing import Iterable

from sqlalchemy import update
from sqlmodel import Session, select

from storefront.models.product import Category, Product


class ProductRepository:
    """
    Data access layer for Product & Category.

    - Pure DB operations, no commits (callers own the transaction).
    - Stock changes are single conditional UPDATE statements so they are
      safe against concurrent writers.
    """

    # ----- Products -----

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def get_many(
        self,
        session: Session,
        product_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        stmt = select(Product).where(Product.id.in_(ids))
        return {p.id: p for p in session.exec(stmt).all()}

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        amount: int,
    ) -> bool:
        """
        Take `amount` units out of stock.

        Returns False (and changes nothing) if the product is missing or
        has fewer than `amount` units; never clamps to zero.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= amount)
            .values(stock=Product.stock - amount)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        self._expire_stock(session, product_id)
        return result.rowcount == 1

    def increment_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        amount: int,
    ) -> bool:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + amount)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        self._expire_stock(session, product_id)
        return result.rowcount == 1

    @staticmethod
    def _expire_stock(session: Session, product_id: uuid.UUID) -> None:
        # Loaded Product instances must re-read stock after a bulk UPDATE
        cached = session.identity_map.get(session.identity_key(Product, product_id))
        if cached is not None:
            session.expire(cached, ["stock"])

    # ----- Categories -----

    def get_categories(
        self,
        session: Session,
        category_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, Category]:
        ids = set(category_ids)
        if not ids:
            return {}
        stmt = select(Category).where(Category.id.in_(ids))
        return {c.id: c for c in session.exec(stmt).all()}
