# seed_demo_data.py
from decimal import Decimal

from sqlmodel import Session, select

from storefront.database import create_db_and_tables, engine
from storefront.models.product import Category, Product
from storefront.models import cart as _cart_models  # noqa: F401
from storefront.models import order as _order_models  # noqa: F401
from storefront.models import user as _user_models  # noqa: F401

DEMO_PRODUCTS = [
    ("Ceramic Mug", "MUG-001", Decimal("9.99"), 25),
    ("Linen Tote Bag", "BAG-001", Decimal("19.50"), 10),
    ("Desk Notebook", "NOTE-001", Decimal("4.25"), 100),
]


def main():
    print("Seeding demo catalog...")
    create_db_and_tables()

    with Session(engine) as session:
        category = session.exec(select(Category).where(Category.slug == "demo")).first()
        if category is None:
            category = Category(name="Demo", slug="demo")
            session.add(category)
            session.flush()

        for name, sku, price, stock in DEMO_PRODUCTS:
            if session.exec(select(Product).where(Product.sku == sku)).first():
                continue
            session.add(
                Product(
                    name=name,
                    sku=sku,
                    price=price,
                    stock=stock,
                    category_id=category.id,
                )
            )
        session.commit()

    print("Done. Products available under category 'demo'.")


if __name__ == "__main__":
    main()
