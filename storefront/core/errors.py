# storefront/core/errors.py
"""
Domain errors and the HTTP envelope they are rendered into.

Services raise ShopError subclasses directly (they are HTTPExceptions, so
FastAPI already knows how to turn them into responses). The handlers
registered here give every failure the same body:

    {"success": false, "error": "<CODE>", "message": "<human text>"}
"""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ShopError(HTTPException):
    """Base class for business-rule failures raised by the services."""

    http_status: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"
    message: str = "Bad request"

    def __init__(self, message: str | None = None):
        super().__init__(status_code=self.http_status, detail=message or self.message)


class IdentityRequired(ShopError):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "IDENTITY_REQUIRED"
    message = "Either an authenticated user or a session id is required"


class AuthenticationFailed(ShopError):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    message = "Authentication required"


class AdminRequired(ShopError):
    http_status = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "Admin access required"


class InvalidQuantity(ShopError):
    code = "INVALID_QUANTITY"
    message = "Quantity must be a positive integer"


class ProductNotFound(ShopError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "PRODUCT_NOT_FOUND"
    message = "Product not found"


class ProductUnavailable(ShopError):
    code = "PRODUCT_UNAVAILABLE"
    message = "Product is not available"


class InsufficientStock(ShopError):
    code = "INSUFFICIENT_STOCK"
    message = "Insufficient stock available"


class CartNotFound(ShopError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "CART_NOT_FOUND"
    message = "Cart not found"


class CartItemNotFound(ShopError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "CART_ITEM_NOT_FOUND"
    message = "Cart item not found"


class OrderNotFound(ShopError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "ORDER_NOT_FOUND"
    message = "Order not found"


class InvalidOrderState(ShopError):
    code = "INVALID_ORDER_STATE"
    message = "Only pending orders can be cancelled"


class PersistenceUnavailable(ShopError):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "DATABASE_UNAVAILABLE"
    message = "Database connection unavailable"


# Codes for plain HTTPExceptions raised by FastAPI / auth dependencies
_STATUS_CODES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_503_SERVICE_UNAVAILABLE: "SERVICE_UNAVAILABLE",
}


def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": code, "message": message}


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = getattr(exc, "code", None) or _STATUS_CODES.get(exc.status_code, "ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", "; ".join(parts) or "Invalid request"),
    )


async def _persistence_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=PersistenceUnavailable.http_status,
        content=error_body(PersistenceUnavailable.code, PersistenceUnavailable.message),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "Internal Server Error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope-producing handlers to the application."""
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(OperationalError, _persistence_exception_handler)
    app.add_exception_handler(PoolTimeoutError, _persistence_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
