# storefront/database.py
import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, create_engine, Session

from storefront.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Postgres connection
#
# - sslmode=require   : enforce SSL when running in the cloud
# - pool_pre_ping=True: validate connections before using them
#
# SQLite (local dev / tests) needs check_same_thread=False because
# FastAPI runs sync endpoints on a threadpool.
# ---------------------------------------------------------

db_url = settings.DATABASE_URL
is_sqlite = db_url.startswith("sqlite")

engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}

if is_sqlite:
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    # Append sslmode=require if it is not already present
    if "sslmode=" not in db_url:
        if "?" in db_url:
            db_url = db_url + "&sslmode=require"
        else:
            db_url = db_url + "?sslmode=require"
    engine_kwargs["pool_size"] = 5
    engine_kwargs["max_overflow"] = 5

engine = create_engine(db_url, **engine_kwargs)


def create_db_and_tables(bind: Engine | None = None) -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    Usage:

        from fastapi import Depends

        @router.get("/example")
        def example_endpoint(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine) as session:
        yield session


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """
    Run a block of repository calls as one atomic unit.

    Commits when the block exits normally. Any exception rolls back every
    statement issued inside the block and is re-raised unchanged.

        with transaction(session):
            repo.create_order(session, order)
            repo.decrement_stock(session, product_id, 3)
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


# ---------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------


def check_database(bind: Engine | None = None) -> bool:
    """Return True if a trivial query succeeds against the database."""
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except OperationalError as e:
        logger.warning("Database health check failed: %s", e)
        return False


def wait_for_database(
    bind: Engine | None = None,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> None:
    """
    Block until the database accepts connections.

    Retries with exponential backoff (backoff, 2x backoff, 4x backoff, ...).
    This is the only place in the app that retries; business operations
    never do.

    Raises:
        OperationalError: if the last attempt still fails.
    """
    bind = bind or engine
    attempts = max_attempts or settings.DB_CONNECT_MAX_ATTEMPTS
    delay = backoff_seconds if backoff_seconds is not None else settings.DB_CONNECT_BACKOFF_SECONDS

    for attempt in range(1, attempts + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError as e:
            if attempt >= attempts:
                logger.error("Database unreachable after %d attempts", attempts)
                raise
            logger.warning(
                "Database connection attempt %d/%d failed (%s), retrying in %.2fs",
                attempt,
                attempts,
                e,
                delay,
            )
            time.sleep(delay)
            delay *= 2
