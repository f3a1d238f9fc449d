# storefront/routers/cart.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from storefront.core.auth import get_cart_identity, require_auth
from storefront.core.identity import CartIdentity
from storefront.database import get_session
from storefront.models.user import User
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartItemCreate, CartItemUpdate, CartMerge, CartRead
from storefront.schemas.common import ApiResponse
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["Cart"])

cart_repo = CartRepository()
product_repo = ProductRepository()
service = CartService(cart_repo, product_repo)


@router.get("", response_model=ApiResponse[CartRead])
def get_my_cart(
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Get the caller's cart, creating an empty one on first access.

    Identity:
      - Bearer token => user cart
      - otherwise X-Session-Id header => guest cart
    """
    cart = service.get_or_create_cart(session, identity)
    return ApiResponse(data=cart)


@router.post("/items", response_model=ApiResponse[CartRead])
def add_to_cart(
    payload: CartItemCreate,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Add a product to the caller's cart. Repeated adds accumulate.
    """
    cart = service.get_or_create_cart(session, identity)
    updated = service.add_to_cart(session, cart.id, payload.product_id, payload.quantity)
    return ApiResponse(data=updated, message="Item added to cart")


@router.put("/items/{item_id}", response_model=ApiResponse[CartRead])
def update_cart_item(
    item_id: uuid.UUID,
    payload: CartItemUpdate,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Set the quantity of a line in the caller's cart (0 removes it).
    """
    cart = service.get_or_create_cart(session, identity)
    updated = service.update_cart_item(session, item_id, payload.quantity, cart_id=cart.id)
    message = "Item removed from cart" if payload.quantity == 0 else "Cart item updated"
    return ApiResponse(data=updated, message=message)


@router.delete("/items/{item_id}", response_model=ApiResponse[CartRead])
def remove_cart_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    cart = service.get_or_create_cart(session, identity)
    updated = service.remove_cart_item(session, item_id, cart_id=cart.id)
    return ApiResponse(data=updated, message="Item removed from cart")


@router.delete("", response_model=ApiResponse[CartRead])
def clear_cart(
    session: Session = Depends(get_session),
    identity: CartIdentity = Depends(get_cart_identity),
):
    """
    Clear the entire cart. Returns the empty cart.
    """
    cart = service.get_or_create_cart(session, identity)
    cleared = service.clear_cart(session, cart.id)
    return ApiResponse(data=cleared, message="Cart cleared")


@router.post("/merge", response_model=ApiResponse[CartRead])
def merge_cart(
    payload: CartMerge,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Merge a guest cart into the signed-in user's cart.

    Called right after login with the session id the guest was using.
    """
    merged = service.merge_guest_cart(session, current_user.id, payload.guest_session_id)
    return ApiResponse(data=merged, message="Carts merged successfully")
