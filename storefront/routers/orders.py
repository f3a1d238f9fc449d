# storefront/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from storefront.core.auth import require_admin, require_auth
from storefront.database import get_session
from storefront.models.order import OrderStatus
from storefront.models.user import User
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.common import ApiResponse
from storefront.schemas.order import (
    OrderCreate,
    OrderListQuery,
    OrderPage,
    OrderRead,
    OrderSortField,
    OrderStatusUpdate,
    PaymentConfirmation,
    SortOrder,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
product_repo = ProductRepository()
service = OrderService(order_repo, product_repo)


# -------- Payment gateway callback (no auth) --------


@router.put("/confirm-payment", response_model=ApiResponse[OrderRead])
def confirm_payment(
    payload: PaymentConfirmation,
    session: Session = Depends(get_session),
):
    """
    Payment gateway callback: mark the order CONFIRMED.

    Unauthenticated by design of the gateway integration; the order is
    addressed by its public order_no.
    """
    order = service.confirm_order_payment(session, payload.order_no, payload)
    return ApiResponse(data=order, message="Order payment confirmed successfully")


# -------- User-facing endpoints --------


@router.get("", response_model=ApiResponse[OrderPage])
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: OrderStatus | None = None,
    sort_by: OrderSortField = "created_at",
    sort_order: SortOrder = "desc",
):
    """
    List the authenticated user's orders (without items), newest first.
    """
    query = OrderListQuery(
        page=page,
        limit=limit,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ApiResponse(data=service.get_user_orders(session, current_user.id, query))


@router.post(
    "",
    response_model=ApiResponse[OrderRead],
    status_code=status.HTTP_201_CREATED,
)
def create_order(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Place an order for the given items and reserve their stock.
    """
    order = service.create_order(session, current_user.id, payload)
    return ApiResponse(data=order, message="Order created successfully")


@router.get("/{order_id}", response_model=ApiResponse[OrderRead])
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Get a single order (with items) belonging to the current user.
    """
    return ApiResponse(data=service.get_order_by_id(session, order_id, current_user.id))


@router.put("/{order_id}/cancel", response_model=ApiResponse[OrderRead])
def cancel_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Cancel a PENDING order and return its items to stock.
    """
    order = service.cancel_order(session, order_id, current_user.id)
    return ApiResponse(data=order, message="Order cancelled successfully")


# -------- Admin endpoints --------


@router.put(
    "/{order_id}/status",
    response_model=ApiResponse[OrderRead],
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Overwrite order status (admin only).

    Any OrderStatus value is accepted; moves outside the normal
    lifecycle are logged.
    """
    order = service.update_order_status(session, order_id, payload.status)
    return ApiResponse(data=order, message="Order status updated successfully")
