# tests/conftest.py
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Settings are cached on first import; configure them before anything
# from storefront is loaded.
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_CONNECT_MAX_ATTEMPTS"] = "1"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from storefront.database import get_session
from storefront.main import app
from storefront.models.product import Category, Product
from storefront.models.user import User
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def _get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---- services ----


@pytest.fixture
def cart_service():
    return CartService(CartRepository(), ProductRepository())


@pytest.fixture
def order_service():
    return OrderService(OrderRepository(), ProductRepository())


# ---- catalog / users ----


@pytest.fixture
def category(session):
    category = Category(name="Kitchen", slug="kitchen")
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@pytest.fixture
def make_product(session, category):
    counter = {"n": 0}

    def _make(price="9.99", stock=10, is_active=True, name=None):
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            sku=f"SKU-{counter['n']:04d}",
            price=Decimal(price),
            stock=stock,
            is_active=is_active,
            category_id=category.id,
            images=[f"https://cdn.example.com/p{counter['n']}.jpg"],
        )
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make


def _make_user(session, email, role="user"):
    user = User(id=uuid.uuid4(), email=email, name=email.split("@")[0], role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def user(session):
    return _make_user(session, "alice@example.com")


@pytest.fixture
def other_user(session):
    return _make_user(session, "bob@example.com")


@pytest.fixture
def admin(session):
    return _make_user(session, "root@example.com", role="admin")


def make_token(user: User) -> str:
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user)}"}


@pytest.fixture
def headers_for():
    """Build bearer headers for a user row."""
    return auth_headers
