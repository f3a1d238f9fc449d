# storefront/routers/health.py
from fastapi import APIRouter

from storefront.core.errors import PersistenceUnavailable
from storefront.database import check_database
from storefront.schemas.common import ApiResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=ApiResponse[dict])
def health():
    """
    Liveness + database connectivity probe.

    503 when the database does not answer.
    """
    if not check_database():
        raise PersistenceUnavailable()
    return ApiResponse(data={"status": "ok", "database": "connected"})
