# storefront/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - JWT_SECRET (HS256 secret shared with the token issuer)

    Optional:
      - DATABASE_URL (defaults to a local SQLite file; use Postgres in prod)
      - CORS_ORIGINS, LOG_LEVEL
      - ORDER_NO_PREFIX / ORDER_NO_MAX_ATTEMPTS (order number generation)
      - DB_CONNECT_MAX_ATTEMPTS / DB_CONNECT_BACKOFF_SECONDS (startup retry)
    """

    PROJECT_NAME: str = "Storefront API"
    API_PREFIX: str = "/api"

    # DB config
    DATABASE_URL: str = "sqlite:///./storefront.db"

    # JWT verification (backend-side)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    LOG_LEVEL: str = "INFO"

    # Orders
    ORDER_NO_PREFIX: str = "ORD"
    ORDER_NO_MAX_ATTEMPTS: int = 3

    # Connection lifecycle
    DB_CONNECT_MAX_ATTEMPTS: int = 5
    DB_CONNECT_BACKOFF_SECONDS: float = 0.5

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
