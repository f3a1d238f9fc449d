# storefront/repositories/order_repo.py
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import func
from sqlmodel import Session, select

from storefront.models.order import Order, OrderItem, OrderStatus


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - No commits here; order creation and cancellation are multi-step
        transactions. The service owns the transaction scope.
    """

    # ---- Orders ----

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def get_for_owner(
        self,
        session: Session,
        order_id: uuid.UUID,
        user_id: uuid.UUID,
        for_update: bool = False,
    ) -> Order | None:
        stmt = select(Order).where(Order.id == order_id, Order.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        return session.exec(stmt).first()

    def get_by_order_no(
        self, session: Session, order_no: str, for_update: bool = False
    ) -> Order | None:
        stmt = select(Order).where(Order.order_no == order_no)
        if for_update:
            stmt = stmt.with_for_update()
        return session.exec(stmt).first()

    def list_orders(
        self,
        session: Session,
        *,
        user_id: uuid.UUID | None = None,
        status: OrderStatus | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[list[Order], int]:
        """
        Filtered, sorted, paginated listing.

        Returns:
            (orders on the requested page, total matching rows)
        """
        conditions = []
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        if status is not None:
            conditions.append(Order.status == status)
        if date_from is not None:
            conditions.append(Order.created_at >= date_from)
        if date_to is not None:
            conditions.append(Order.created_at <= date_to)

        column = getattr(Order, sort_by)
        ordering = column.asc() if sort_order == "asc" else column.desc()

        stmt = (
            select(Order)
            .where(*conditions)
            .order_by(ordering, Order.id)
            .offset(skip)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(Order).where(*conditions)

        orders = list(session.exec(stmt).all())
        total = session.exec(count_stmt).one()
        return orders, total

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()  # Assign PK, surface unique violations
        session.refresh(order)
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return list(session.exec(stmt).all())

    def list_items_for_orders(
        self,
        session: Session,
        order_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, list[OrderItem]]:
        ids = set(order_ids)
        grouped: dict[uuid.UUID, list[OrderItem]] = {oid: [] for oid in ids}
        if not ids:
            return grouped
        stmt = select(OrderItem).where(OrderItem.order_id.in_(ids))
        for item in session.exec(stmt).all():
            grouped[item.order_id].append(item)
        return grouped

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        for item in items:
            session.refresh(item)
        return items
