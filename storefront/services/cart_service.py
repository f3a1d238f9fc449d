# storefront/services/cart_service.py
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from storefront.core.errors import (
    CartItemNotFound,
    CartNotFound,
    IdentityRequired,
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
)
from storefront.core.identity import CartIdentity, SessionIdentity, UserIdentity
from storefront.database import transaction
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartItemRead, CartRead
from storefront.schemas.product import ProductSummary

logger = logging.getLogger(__name__)

# Fixed tax rate (10%)
TAX_RATE = Decimal("0.10")

CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class CartService:
    """
    Business logic for cart operations.

    Responsibilities:
      - one cart per identity (user or guest session)
      - validate product existence and active flag
      - enforce quantity <= stock on every add/update
      - snapshot unit_price from Product.price on first insertion only
      - keep subtotal / tax / total in step with the items

    Every mutation runs in a single transaction with the cart row locked,
    so item changes and the recalculated totals commit together.
    """

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    # ---- internal helpers ----

    def _get_sellable_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if not product or not product.is_active:
            raise ProductNotFound("Product not found or inactive")
        return product

    def _lock_cart(self, session: Session, cart_id: uuid.UUID) -> Cart:
        cart = self.cart_repo.lock(session, cart_id)
        if not cart:
            raise CartNotFound()
        return cart

    def _find_cart(self, session: Session, identity: CartIdentity) -> Cart | None:
        if isinstance(identity, UserIdentity):
            return self.cart_repo.get_by_user(session, identity.user_id)
        if isinstance(identity, SessionIdentity):
            return self.cart_repo.get_by_session(session, identity.session_id)
        raise IdentityRequired()

    def _resolve_cart(self, session: Session, identity: CartIdentity | None) -> Cart:
        """
        Return the identity's cart, creating an empty one if needed.

        Two requests racing to create the same cart both hit the unique
        constraint on user_id / session_id; the loser re-reads the winner's row.
        """
        if identity is None:
            raise IdentityRequired()

        cart = self._find_cart(session, identity)
        if cart:
            return cart

        new_cart = Cart(
            user_id=identity.user_id if isinstance(identity, UserIdentity) else None,
            session_id=identity.session_id if isinstance(identity, SessionIdentity) else None,
        )
        try:
            with transaction(session):
                self.cart_repo.create(session, new_cart)
        except IntegrityError:
            cart = self._find_cart(session, identity)
            if cart is None:
                raise
            return cart

        return new_cart

    def _add_item(
        self,
        session: Session,
        cart: Cart,
        product_id: uuid.UUID,
        quantity: int,
    ) -> CartItem:
        """
        Add `quantity` of a product to a locked cart.

        Rules:
          - product must exist and be active
          - existing_quantity + quantity <= stock
          - unit_price is snapshotted only when the line is created
        """
        if quantity <= 0:
            raise InvalidQuantity()

        product = self._get_sellable_product(session, product_id)

        if product.stock < quantity:
            raise InsufficientStock()

        existing = self.cart_repo.get_item(session, cart.id, product_id)

        if existing:
            new_qty = existing.quantity + quantity
            if product.stock < new_qty:
                raise InsufficientStock("Insufficient stock for requested quantity")
            existing.quantity = new_qty
            return self.cart_repo.update_item(session, existing)

        item = CartItem(
            cart_id=cart.id,
            product_id=product_id,
            quantity=quantity,
            unit_price=product.price,
        )
        return self.cart_repo.add_item(session, item)

    def _get_owned_item(
        self,
        session: Session,
        cart_item_id: uuid.UUID,
        cart_id: uuid.UUID | None,
    ) -> CartItem:
        item = self.cart_repo.get_item_by_id(session, cart_item_id)
        if not item or (cart_id is not None and item.cart_id != cart_id):
            raise CartItemNotFound()
        return item

    def recalculate_cart_totals(self, session: Session, cart: Cart) -> Cart:
        """
        Recompute derived totals from the current items.

          subtotal = sum(unit_price * quantity)
          tax      = round(subtotal * TAX_RATE, 2)
          total    = subtotal + tax

        Must run inside the caller's transaction.
        """
        items = self.cart_repo.list_items(session, cart.id)

        subtotal = sum(
            (Decimal(it.unit_price) * it.quantity for it in items),
            Decimal("0"),
        )
        subtotal = _money(subtotal)
        tax = _money(subtotal * TAX_RATE)

        cart.subtotal = subtotal
        cart.tax = tax
        cart.total = subtotal + tax
        cart.updated_at = datetime.now(timezone.utc)
        return self.cart_repo.update(session, cart)

    def _format_cart(self, session: Session, cart: Cart) -> CartRead:
        rows = self.cart_repo.list_items_with_products(session, cart.id)

        items: list[CartItemRead] = []
        item_count = 0
        for item, product, category in rows:
            item_count += item.quantity
            items.append(
                CartItemRead(
                    id=item.id,
                    product_id=item.product_id,
                    product=ProductSummary.from_models(product, category),
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=_money(Decimal(item.unit_price) * item.quantity),
                )
            )

        return CartRead(
            id=cart.id,
            user_id=cart.user_id,
            session_id=cart.session_id,
            items=items,
            subtotal=cart.subtotal,
            tax=cart.tax,
            total=cart.total,
            item_count=item_count,
            updated_at=cart.updated_at,
        )

    # ---- public operations ----

    def get_or_create_cart(
        self,
        session: Session,
        identity: CartIdentity | None,
    ) -> CartRead:
        """
        Return the cart for a user or guest session, creating it if needed.

        Raises:
            IdentityRequired: identity is None.
        """
        cart = self._resolve_cart(session, identity)
        return self._format_cart(session, cart)

    def get_cart(self, session: Session, cart_id: uuid.UUID) -> CartRead:
        cart = self.cart_repo.get_by_id(session, cart_id)
        if not cart:
            raise CartNotFound()
        return self._format_cart(session, cart)

    def add_to_cart(
        self,
        session: Session,
        cart_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
    ) -> CartRead:
        """
        Add a product to a cart; repeated adds accumulate quantity.

        Raises:
            InvalidQuantity, CartNotFound, ProductNotFound, InsufficientStock
        """
        if quantity <= 0:
            raise InvalidQuantity()

        with transaction(session):
            cart = self._lock_cart(session, cart_id)
            self._add_item(session, cart, product_id, quantity)
            self.recalculate_cart_totals(session, cart)

        return self.get_cart(session, cart_id)

    def update_cart_item(
        self,
        session: Session,
        cart_item_id: uuid.UUID,
        quantity: int,
        cart_id: uuid.UUID | None = None,
    ) -> CartRead:
        """
        Set the quantity of a cart line.

        quantity == 0 removes the line. When cart_id is given the line must
        belong to that cart, otherwise it is reported as not found.

        Raises:
            InvalidQuantity, CartItemNotFound, ProductNotFound, InsufficientStock
        """
        if quantity < 0:
            raise InvalidQuantity("Quantity cannot be negative")
        if quantity == 0:
            return self.remove_cart_item(session, cart_item_id, cart_id=cart_id)

        item = self._get_owned_item(session, cart_item_id, cart_id)
        owner_cart_id = item.cart_id

        with transaction(session):
            cart = self._lock_cart(session, owner_cart_id)
            # Re-read under the lock; a concurrent remove may have won
            item = self._get_owned_item(session, cart_item_id, owner_cart_id)
            product = self.product_repo.get_by_id(session, item.product_id)
            if not product:
                raise ProductNotFound()
            if product.stock < quantity:
                raise InsufficientStock()

            item.quantity = quantity
            self.cart_repo.update_item(session, item)
            self.recalculate_cart_totals(session, cart)

        return self.get_cart(session, owner_cart_id)

    def remove_cart_item(
        self,
        session: Session,
        cart_item_id: uuid.UUID,
        cart_id: uuid.UUID | None = None,
    ) -> CartRead:
        """
        Remove a line from its cart and return the updated cart.

        Raises:
            CartItemNotFound
        """
        item = self._get_owned_item(session, cart_item_id, cart_id)
        owner_cart_id = item.cart_id

        with transaction(session):
            cart = self._lock_cart(session, owner_cart_id)
            item = self._get_owned_item(session, cart_item_id, owner_cart_id)
            self.cart_repo.delete_item(session, item)
            self.recalculate_cart_totals(session, cart)

        return self.get_cart(session, owner_cart_id)

    def clear_cart(self, session: Session, cart_id: uuid.UUID) -> CartRead:
        """
        Delete every item and zero the totals. Safe to call repeatedly.
        """
        with transaction(session):
            cart = self._lock_cart(session, cart_id)
            self.cart_repo.delete_items(session, cart.id)
            cart.subtotal = Decimal("0.00")
            cart.tax = Decimal("0.00")
            cart.total = Decimal("0.00")
            cart.updated_at = datetime.now(timezone.utc)
            self.cart_repo.update(session, cart)

        return self.get_cart(session, cart_id)

    def merge_guest_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
        guest_session_id: str,
    ) -> CartRead:
        """
        Fold a guest cart into the user's cart.

        Each guest line goes through the same rules as add_to_cart
        (accumulation + stock check). The guest cart is deleted afterwards.
        The whole merge is one transaction: if any line fails, neither cart
        changes. A missing or empty guest cart is a no-op.
        """
        user_cart = self._resolve_cart(session, UserIdentity(user_id=user_id))
        guest_cart = self.cart_repo.get_by_session(session, guest_session_id)

        if not guest_cart or guest_cart.id == user_cart.id:
            return self._format_cart(session, user_cart)

        guest_items = self.cart_repo.list_items(session, guest_cart.id)
        if not guest_items:
            return self._format_cart(session, user_cart)

        with transaction(session):
            cart = self._lock_cart(session, user_cart.id)
            for guest_item in guest_items:
                self._add_item(session, cart, guest_item.product_id, guest_item.quantity)
            self.cart_repo.delete(session, guest_cart)
            self.recalculate_cart_totals(session, cart)

        logger.info(
            "Merged guest cart %s (%d lines) into cart %s",
            guest_session_id,
            len(guest_items),
            user_cart.id,
        )
        return self.get_cart(session, user_cart.id)
