# storefront/schemas/common.py
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlmodel import SQLModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    Envelope shared by every endpoint.

    Errors use the same shape with success=False (see core.errors).
    """

    success: bool = True
    data: T | None = None
    error: str | None = None
    message: str | None = None


class Pagination(SQLModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next=page < total_pages,
            has_previous=page > 1,
        )
