# storefront/repositories/cart_repo.py
import uuid

from sqlmodel import Session, select

from storefront.models.cart import Cart, CartItem
from storefront.models.product import Category, Product


class CartRepository:
    """
    Data access layer for carts and cart_items.

    NOTE:
      - No commits here; every cart mutation is one transaction owned
        by CartService.
    """

    # ---- Carts ----

    def get_by_id(self, session: Session, cart_id: uuid.UUID) -> Cart | None:
        return session.get(Cart, cart_id)

    def lock(self, session: Session, cart_id: uuid.UUID) -> Cart | None:
        """
        Load a cart with a row lock (SELECT ... FOR UPDATE).

        Serializes concurrent mutations of the same cart until the
        surrounding transaction ends. SQLite ignores the lock clause.
        """
        stmt = select(Cart).where(Cart.id == cart_id).with_for_update()
        return session.exec(stmt).first()

    def get_by_user(self, session: Session, user_id: uuid.UUID) -> Cart | None:
        stmt = select(Cart).where(Cart.user_id == user_id)
        return session.exec(stmt).first()

    def get_by_session(self, session: Session, session_id: str) -> Cart | None:
        stmt = select(Cart).where(Cart.session_id == session_id)
        return session.exec(stmt).first()

    def create(self, session: Session, cart: Cart) -> Cart:
        session.add(cart)
        session.flush()
        session.refresh(cart)
        return cart

    def update(self, session: Session, cart: Cart) -> Cart:
        session.add(cart)
        session.flush()
        return cart

    def delete(self, session: Session, cart: Cart) -> None:
        self.delete_items(session, cart.id)
        session.delete(cart)
        session.flush()

    # ---- Items ----

    def get_item_by_id(self, session: Session, item_id: uuid.UUID) -> CartItem | None:
        return session.get(CartItem, item_id)

    def get_item(
        self,
        session: Session,
        cart_id: uuid.UUID,
        product_id: uuid.UUID,
    ) -> CartItem | None:
        stmt = select(CartItem).where(
            CartItem.cart_id == cart_id, CartItem.product_id == product_id
        )
        return session.exec(stmt).first()

    def list_items(self, session: Session, cart_id: uuid.UUID) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.created_at)
        )
        return list(session.exec(stmt).all())

    def list_items_with_products(
        self,
        session: Session,
        cart_id: uuid.UUID,
    ) -> list[tuple[CartItem, Product, Category | None]]:
        """Items joined with their product and the product's category."""
        stmt = (
            select(CartItem, Product, Category)
            .join(Product, Product.id == CartItem.product_id)
            .outerjoin(Category, Category.id == Product.category_id)
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.created_at)
        )
        return list(session.exec(stmt).all())

    def add_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.flush()
        return item

    def update_item(self, session: Session, item: CartItem) -> CartItem:
        session.add(item)
        session.flush()
        return item

    def delete_item(self, session: Session, item: CartItem) -> None:
        session.delete(item)
        session.flush()

    def delete_items(self, session: Session, cart_id: uuid.UUID) -> None:
        for row in self.list_items(session, cart_id):
            session.delete(row)
        session.flush()
