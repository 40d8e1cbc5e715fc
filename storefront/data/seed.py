# storefront/data/seed.py
from decimal import Decimal

from storefront.data.database import SessionLocal, init_db, transaction
from storefront.data.models import BrandModel, CategoryModel, CustomerModel, ProductModel
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CATEGORIES = {1: "Electronics", 2: "Books"}
BRANDS = {1: "Acme", 2: "Globex"}
PRODUCTS = (
    (1, 1, 1, "USB-C Cable", Decimal("9.99")),
    (2, 1, 2, "Wireless Mouse", Decimal("24.50")),
    (3, 2, None, "Python Cookbook", Decimal("39.90")),
    (4, 1, 1, "Mechanical Keyboard", Decimal("89.00")),
)


def seed():
    """Small development catalog, only seeded into an empty database."""
    init_db()
    db = SessionLocal()
    try:
        if db.query(ProductModel).first():
            return
        with transaction(db):
            db.add_all(CategoryModel(id=cid, name=name) for cid, name in CATEGORIES.items())
            db.add_all(BrandModel(id=bid, name=name) for bid, name in BRANDS.items())
            db.flush()
            db.add_all(
                ProductModel(id=pid, category_id=cat, brand_id=brand, title=title, price=price)
                for pid, cat, brand, title, price in PRODUCTS
            )
            db.add(CustomerModel(id=1, name="Demo Customer", email="demo@example.com"))
        logger.info(f"Seeded {len(PRODUCTS)} products")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
