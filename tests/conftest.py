import os

# must be set before storefront.utils.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ["INVOICE_RETRY_WAIT_SECONDS"] = "0"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.api import create_app
from storefront.data.database import Base, SessionLocal, engine, get_db, init_db
from storefront.data.models import BrandModel, CategoryModel, CustomerModel, ProductModel
from storefront.domain.owner import Customer, Guest


@pytest.fixture()
def db():
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def catalog(db):
    db.add_all([CategoryModel(id=1, name="Accessories"), BrandModel(id=1, name="Acme")])
    db.flush()
    db.add_all(
        [
            ProductModel(id=1, category_id=1, brand_id=1, title="Alpha Cable", price=Decimal("10.00")),
            ProductModel(id=2, category_id=1, brand_id=1, title="Beta Mouse", price=Decimal("25.50")),
            ProductModel(id=3, title="Gamma Book", price=Decimal("40.00")),
            ProductModel(id=4, category_id=1, title="Delta Keyboard", price=Decimal("89.00")),
        ]
    )
    db.add_all(
        [
            CustomerModel(id=1, name="Ada", email="ada@example.com"),
            CustomerModel(id=2, name="Linus", email="linus@example.com"),
        ]
    )
    db.commit()
    return db


@pytest.fixture()
def customer():
    return Customer(1)


@pytest.fixture()
def guest():
    return Guest("1.2.3.4")


@pytest.fixture()
def client(catalog):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: catalog
    return TestClient(app)
