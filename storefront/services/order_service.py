# storefront/services/order_service.py
import logging
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.core.errors import (
    InsufficientStock,
    InvalidOrderState,
    OrderNotFound,
    ProductNotFound,
    ProductUnavailable,
)
from storefront.database import transaction
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.product import Product
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.common import Pagination
from storefront.schemas.order import (
    AdminOrderLine,
    AdminOrderListQuery,
    AdminOrderPage,
    AdminOrderSummary,
    OrderCreate,
    OrderItemRead,
    OrderListQuery,
    OrderPage,
    OrderRead,
    OrderSummary,
    PaymentConfirmation,
)
from storefront.schemas.product import ProductSummary

settings = get_settings()
logger = logging.getLogger(__name__)

# Allowed status moves. DELIVERED and CANCELLED are terminal.
ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ORDER_TRANSITIONS.get(current, set())


def generate_order_no(prefix: str | None = None) -> str:
    """
    Build a public order number: <prefix>-<epoch millis>-<9 hex chars>.

    Uniqueness is guaranteed by the unique index on orders.order_no;
    create_order retries on the (unlikely) collision.
    """
    prefix = prefix or settings.ORDER_NO_PREFIX
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{uuid.uuid4().hex[:9].upper()}"


class _OrderNumberTaken(Exception):
    """Raised inside the order transaction when order_no collides."""


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Create orders from a raw item list with live catalog prices
      - Reserve stock atomically with the order insert
      - Cancel pending orders and release their stock
      - Owner-scoped reads and paginated listings
      - Admin status override and payment confirmation
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo

    # -------- User-facing operations --------

    def create_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: OrderCreate,
    ) -> OrderRead:
        """
        Place an order and reserve stock.

        Steps (single transaction):
          1. For each line, load the product; reject missing, inactive or
             under-stocked products.
          2. Price each line from the current product price.
          3. Insert the Order (status PENDING) and its OrderItems.
          4. Decrement stock with a conditional UPDATE per line.

        Any failure rolls everything back. An order_no collision retries
        the whole transaction with a fresh number, up to
        ORDER_NO_MAX_ATTEMPTS times.
        """
        attempts = max(1, settings.ORDER_NO_MAX_ATTEMPTS)

        for attempt in range(1, attempts + 1):
            order_no = generate_order_no()
            try:
                with transaction(session):
                    order = self._place_order(session, order_no, user_id, payload)
                break
            except _OrderNumberTaken:
                if attempt >= attempts:
                    logger.error("Could not allocate a unique order number after %d attempts", attempts)
                    raise RuntimeError("Could not allocate a unique order number")
                logger.warning("Order number %s already taken, retrying", order_no)

        logger.info(
            "Order %s created for user %s (%d lines, total %s)",
            order.order_no,
            user_id,
            len(payload.items),
            order.total,
        )
        return self.get_order_by_id(session, order.id)

    def _place_order(
        self,
        session: Session,
        order_no: str,
        user_id: uuid.UUID,
        payload: OrderCreate,
    ) -> Order:
        total = Decimal("0")
        lines: list[tuple[Product, int]] = []

        for requested in payload.items:
            product = self.product_repo.get_by_id(session, requested.product_id)

            if not product:
                raise ProductNotFound(f"Product with ID {requested.product_id} not found")

            if not product.is_active:
                raise ProductUnavailable(f"Product {product.name} is not available")

            if product.stock < requested.quantity:
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}. Available: {product.stock}"
                )

            total += Decimal(product.price) * requested.quantity
            lines.append((product, requested.quantity))

        order = Order(
            order_no=order_no,
            user_id=user_id,
            status=OrderStatus.PENDING,
            total=total,
            shipping_address=payload.shipping_address,
            billing_address=payload.billing_address,
            payment_method=payload.payment_method,
        )
        try:
            order = self.order_repo.create_order(session, order)
        except IntegrityError as e:
            # The session is unusable after a failed flush; inspect the message
            if "order_no" not in str(e.orig):
                raise
            raise _OrderNumberTaken(order_no) from e

        self.order_repo.create_items(
            session,
            [
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    quantity=quantity,
                    unit_price=product.price,
                )
                for product, quantity in lines
            ],
        )

        # The pre-check above is advisory; this is the authoritative guard
        for product, quantity in lines:
            if not self.product_repo.decrement_stock(session, product.id, quantity):
                raise InsufficientStock(f"Insufficient stock for {product.name}")

        return order

    def get_order_by_id(
        self,
        session: Session,
        order_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> OrderRead:
        """
        Get a single order with items.

        When user_id is given the lookup is scoped to that owner; a foreign
        order is reported exactly like a missing one.
        """
        if user_id is not None:
            order = self.order_repo.get_for_owner(session, order_id, user_id)
        else:
            order = self.order_repo.get_by_id(session, order_id)

        if not order:
            raise OrderNotFound()

        return self._build_order_dto(session, order)

    def get_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        query: OrderListQuery,
    ) -> OrderPage:
        orders, total = self.order_repo.list_orders(
            session,
            user_id=user_id,
            status=query.status,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            skip=(query.page - 1) * query.limit,
            limit=query.limit,
        )
        items_by_order = self.order_repo.list_items_for_orders(session, [o.id for o in orders])

        return OrderPage(
            orders=[
                OrderSummary(
                    id=o.id,
                    order_no=o.order_no,
                    status=o.status,
                    total=o.total,
                    item_count=len(items_by_order.get(o.id, [])),
                    created_at=o.created_at,
                )
                for o in orders
            ],
            pagination=Pagination.build(query.page, query.limit, total),
        )

    def cancel_order(
        self,
        session: Session,
        order_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> OrderRead:
        """
        Cancel one of the caller's PENDING orders and give the stock back.

        Status change and stock increments commit together.

        Raises:
            OrderNotFound: missing or owned by someone else.
            InvalidOrderState: order is no longer PENDING.
        """
        with transaction(session):
            order = self.order_repo.get_for_owner(session, order_id, user_id, for_update=True)
            if not order:
                raise OrderNotFound()

            if not can_transition(order.status, OrderStatus.CANCELLED):
                raise InvalidOrderState()

            order.status = OrderStatus.CANCELLED
            order.updated_at = datetime.now(timezone.utc)
            self.order_repo.update_order(session, order)

            for item in self.order_repo.list_items_for_order(session, order.id):
                self.product_repo.increment_stock(session, item.product_id, item.quantity)

        logger.info("Order %s cancelled by user %s", order.order_no, user_id)
        return self.get_order_by_id(session, order_id)

    # -------- Admin operations --------

    def get_all_orders(
        self,
        session: Session,
        query: AdminOrderListQuery,
    ) -> AdminOrderPage:
        """
        List all orders (admin only), with optional status / user / date filters.
        """
        orders, total = self.order_repo.list_orders(
            session,
            user_id=query.user_id,
            status=query.status,
            date_from=query.date_from,
            date_to=query.date_to,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            skip=(query.page - 1) * query.limit,
            limit=query.limit,
        )
        items_by_order = self.order_repo.list_items_for_orders(session, [o.id for o in orders])
        products = self.product_repo.get_many(
            session,
            (it.product_id for items in items_by_order.values() for it in items),
        )

        summaries: list[AdminOrderSummary] = []
        for o in orders:
            items = items_by_order.get(o.id, [])
            summaries.append(
                AdminOrderSummary(
                    id=o.id,
                    order_no=o.order_no,
                    user_id=o.user_id,
                    status=o.status,
                    total=o.total,
                    item_count=len(items),
                    items=[
                        AdminOrderLine(
                            product_name=products[it.product_id].name if it.product_id in products else None,
                            quantity=it.quantity,
                            unit_price=it.unit_price,
                        )
                        for it in items
                    ],
                    created_at=o.created_at,
                    updated_at=o.updated_at,
                )
            )

        return AdminOrderPage(
            orders=summaries,
            pagination=Pagination.build(query.page, query.limit, total),
        )

    def update_order_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        status: OrderStatus,
    ) -> OrderRead:
        """
        Admin override: set any valid status.

        The transition table is not enforced here (stock is not touched
        either); moves outside it are logged so they can be audited.
        """
        with transaction(session):
            order = self.order_repo.get_by_id(session, order_id)
            if not order:
                raise OrderNotFound()

            current = order.status
            if current != status and not can_transition(current, status):
                logger.warning(
                    "Admin override on order %s: %s -> %s is outside the normal lifecycle",
                    order.order_no,
                    current.value,
                    status.value,
                )

            order.status = status
            order.updated_at = datetime.now(timezone.utc)
            self.order_repo.update_order(session, order)

        return self.get_order_by_id(session, order_id)

    # -------- Payment callback --------

    def confirm_order_payment(
        self,
        session: Session,
        order_no: str,
        payload: PaymentConfirmation,
    ) -> OrderRead:
        """
        Mark an order CONFIRMED after the payment gateway reports success.

        Looked up by order_no. payment_timestamp defaults to now.
        A repeated callback for an already CONFIRMED order returns it unchanged.

        Raises:
            OrderNotFound
            InvalidOrderState: order is neither PENDING nor CONFIRMED.
        """
        now = datetime.now(timezone.utc)

        with transaction(session):
            order = self.order_repo.get_by_order_no(session, order_no, for_update=True)
            if not order:
                raise OrderNotFound()
            if order.status == OrderStatus.CONFIRMED:
                logger.info("Duplicate payment confirmation for order %s ignored", order_no)
                return self._build_order_dto(session, order)
            if not can_transition(order.status, OrderStatus.CONFIRMED):
                raise InvalidOrderState(
                    f"Cannot confirm payment for an order in status {OrderStatus(order.status).value}"
                )

            order.status = OrderStatus.CONFIRMED
            order.transaction_id = payload.transaction_id
            order.payment_timestamp = payload.payment_timestamp or now
            order.notes = payload.notes or "Payment confirmed"
            order.updated_at = now
            self.order_repo.update_order(session, order)
            order_id = order.id

        logger.info("Payment confirmed for order %s (transaction %s)", order_no, payload.transaction_id)
        return self.get_order_by_id(session, order_id)

    # -------- Helper DTO builder --------

    def _build_order_dto(self, session: Session, order: Order) -> OrderRead:
        items = self.order_repo.list_items_for_order(session, order.id)
        products = self.product_repo.get_many(session, (it.product_id for it in items))
        categories = self.product_repo.get_categories(
            session, (p.category_id for p in products.values())
        )

        item_dtos: list[OrderItemRead] = []
        for it in items:
            product = products.get(it.product_id)
            item_dtos.append(
                OrderItemRead(
                    id=it.id,
                    product_id=it.product_id,
                    product=(
                        ProductSummary.from_models(product, categories.get(product.category_id))
                        if product is not None
                        else None
                    ),
                    quantity=it.quantity,
                    unit_price=it.unit_price,
                    total_price=Decimal(it.unit_price) * it.quantity,
                )
            )

        return OrderRead(
            id=order.id,
            order_no=order.order_no,
            user_id=order.user_id,
            status=order.status,
            total=order.total,
            items=item_dtos,
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            payment_method=order.payment_method,
            transaction_id=order.transaction_id,
            payment_timestamp=order.payment_timestamp,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
