# storefront/routers/admin_orders.py
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from storefront.core.auth import require_admin
from storefront.database import get_session
from storefront.models.order import OrderStatus
from storefront.schemas.common import ApiResponse
from storefront.schemas.order import (
    AdminOrderListQuery,
    AdminOrderPage,
    OrderSortField,
    SortOrder,
)
from storefront.routers.orders import service

router = APIRouter(
    prefix="/admin/orders",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=ApiResponse[AdminOrderPage])
def list_all_orders(
    session: Session = Depends(get_session),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: OrderStatus | None = None,
    user_id: uuid.UUID | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sort_by: OrderSortField = "created_at",
    sort_order: SortOrder = "desc",
):
    """
    List all orders with filters (admin only).
    """
    query = AdminOrderListQuery(
        page=page,
        limit=limit,
        status=status,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ApiResponse(data=service.get_all_orders(session, query))
