# storefront/services/catalog_service.py
from typing import Any, Iterable

from sqlalchemy.orm import Session

from storefront.data.error_classifier import returns_result
from storefront.domain.results import Result
from storefront.domain.schemas import ProductExistence, ProductSnapshot
from storefront.domain.validation import validate_product_id
from storefront.repos.product_repo import ProductRepo


class CatalogService:
    """Read-only product lookups. Nothing is cached, every call hits the store."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProductRepo(db)

    @returns_result("product_exists")
    def exists(self, product_id: Any) -> Result:
        checked = validate_product_id(product_id)
        if not checked.success:
            return checked

        product = self.repo.get_product(checked.data)
        return Result.ok(_existence(checked.data, product))

    @returns_result("products_exist")
    def exists_many(self, product_ids: Iterable[Any]) -> Result:
        """Same answers as calling exists() per id, read in a single query."""
        ids = []
        for product_id in product_ids:
            checked = validate_product_id(product_id)
            if not checked.success:
                return checked
            ids.append(checked.data)

        products = self.repo.get_products(ids)
        return Result.ok({pid: _existence(pid, products.get(pid)) for pid in ids})


def _existence(product_id: int, product) -> ProductExistence:
    if product is None:
        return ProductExistence(product_id=product_id, exists=False)
    return ProductExistence(
        product_id=product_id,
        exists=True,
        product=ProductSnapshot.model_validate(product),
    )
