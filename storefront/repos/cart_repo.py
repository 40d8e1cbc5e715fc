# storefront/repos/cart_repo.py
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, exists, func, select, true, update
from sqlalchemy.orm import Session

from storefront.data.models.brand import BrandModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.category import CategoryModel
from storefront.data.models.product import ProductModel
from storefront.domain.owner import Customer, Guest, Owner


def owner_clause(owner: Owner):
    """The single place where an Owner becomes a WHERE clause."""
    if isinstance(owner, Customer):
        return CartItemModel.customer_id == owner.customer_id
    if isinstance(owner, Guest):
        return and_(
            CartItemModel.ip_address == owner.ip_address,
            CartItemModel.customer_id.is_(None),
        )
    raise TypeError(f"Unsupported cart owner: {owner!r}")


def partition_clause(owner: Optional[Owner]):
    # None scans every partition (scheduled maintenance)
    return true() if owner is None else owner_clause(owner)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_product_missing = ~exists(
    select(ProductModel.id).where(ProductModel.id == CartItemModel.product_id)
)


class CartRepo:
    """
    Row level access to cart_items.

    Never commits: callers own the transaction. Bulk statements skip session
    synchronisation and expire the identity map afterwards, so later reads
    always see the stored rows.
    """

    def __init__(self, db: Session):
        self.db = db

    def _bulk(self, stmt) -> int:
        result = self.db.execute(stmt, execution_options={"synchronize_session": False})
        self.db.expire_all()
        return result.rowcount

    # single lines

    def get_line(self, product_id: int, owner: Owner, for_update: bool = False) -> CartItemModel | None:
        stmt = (
            select(CartItemModel)
            .where(CartItemModel.product_id == product_id, owner_clause(owner))
            .order_by(CartItemModel.id)
            .limit(1)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def get_lines(self, product_id: int, owner: Owner, for_update: bool = False) -> List[CartItemModel]:
        """Every row the owner holds for product_id, oldest first."""
        stmt = (
            select(CartItemModel)
            .where(CartItemModel.product_id == product_id, owner_clause(owner))
            .order_by(CartItemModel.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.db.execute(stmt).scalars().all())

    def add_line(self, product_id: int, quantity: int, owner: Owner) -> CartItemModel:
        line = CartItemModel(product_id=product_id, quantity=quantity, **owner.as_columns())
        self.db.add(line)
        self.db.flush()
        return line

    def write_quantity(self, lines: List[CartItemModel], quantity: int) -> int:
        """
        Stores quantity on the oldest of lines and deletes the others.

        Leaves exactly one row for the key, returns how many extra rows were
        removed.
        """
        keep_id = lines[0].id
        extra_ids = [line.id for line in lines[1:]]
        self._bulk(
            update(CartItemModel)
            .where(CartItemModel.id == keep_id)
            .values(quantity=quantity, updated_at=_utcnow())
        )
        if extra_ids:
            self._bulk(delete(CartItemModel).where(CartItemModel.id.in_(extra_ids)))
        return len(extra_ids)

    def delete_line(self, product_id: int, owner: Owner) -> int:
        return self._bulk(
            delete(CartItemModel).where(CartItemModel.product_id == product_id, owner_clause(owner))
        )

    def delete_all(self, owner: Owner) -> int:
        return self._bulk(delete(CartItemModel).where(owner_clause(owner)))

    def rekey_lines(self, product_id: int, guest: Guest, customer: Customer, quantity: int) -> int:
        """
        Moves a guest's line for product_id to the customer.

        The oldest guest row is re-keyed and carries the given quantity, any
        further guest rows for the same product are deleted.
        """
        first = self.get_line(product_id, guest, for_update=True)
        if first is None:
            return 0
        moved = self._bulk(
            update(CartItemModel)
            .where(CartItemModel.id == first.id)
            .values(quantity=quantity, updated_at=_utcnow(), **customer.as_columns())
        )
        self.delete_line(product_id, guest)
        return moved

    # reads

    def list_raw(self, owner: Owner) -> List[CartItemModel]:
        stmt = select(CartItemModel).where(owner_clause(owner)).order_by(CartItemModel.id)
        return list(self.db.execute(stmt).scalars().all())

    def list_with_products(self, owner: Owner):
        """One row per product, repeated lines are summed."""
        stmt = (
            select(
                CartItemModel.product_id,
                func.sum(CartItemModel.quantity).label("quantity"),
                ProductModel.title,
                ProductModel.price,
                ProductModel.image,
                ProductModel.description,
                CategoryModel.name.label("category"),
                BrandModel.name.label("brand"),
            )
            .join(ProductModel, ProductModel.id == CartItemModel.product_id)
            .outerjoin(CategoryModel, CategoryModel.id == ProductModel.category_id)
            .outerjoin(BrandModel, BrandModel.id == ProductModel.brand_id)
            .where(owner_clause(owner))
            .group_by(
                CartItemModel.product_id,
                ProductModel.title,
                ProductModel.price,
                ProductModel.image,
                ProductModel.description,
                CategoryModel.name,
                BrandModel.name,
            )
            .order_by(ProductModel.title.asc())
        )
        return self.db.execute(stmt).all()

    def quantities_by_product(self, owner: Owner) -> Dict[int, int]:
        """Summed quantity per product, for lines whose product still exists."""
        stmt = (
            select(CartItemModel.product_id, func.sum(CartItemModel.quantity))
            .join(ProductModel, ProductModel.id == CartItemModel.product_id)
            .where(owner_clause(owner))
            .group_by(CartItemModel.product_id)
            .order_by(CartItemModel.product_id)
        )
        return {product_id: int(total) for product_id, total in self.db.execute(stmt).all()}

    def guest_statistics(self) -> Tuple[int, int, int, float]:
        stmt = select(
            func.count(func.distinct(CartItemModel.ip_address)),
            func.count(CartItemModel.id),
            func.coalesce(func.sum(CartItemModel.quantity), 0),
            func.coalesce(func.avg(CartItemModel.quantity), 0),
        ).where(CartItemModel.customer_id.is_(None), CartItemModel.ip_address != "")
        return tuple(self.db.execute(stmt).one())

    def delete_guest_lines_before(self, cutoff: datetime) -> int:
        return self._bulk(
            delete(CartItemModel).where(
                CartItemModel.customer_id.is_(None),
                CartItemModel.updated_at < cutoff,
            )
        )

    # integrity scans

    def orphan_rows(self, owner: Optional[Owner]) -> List[CartItemModel]:
        stmt = (
            select(CartItemModel)
            .where(_product_missing, partition_clause(owner))
            .order_by(CartItemModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def delete_orphans(self, owner: Optional[Owner]) -> int:
        return self._bulk(delete(CartItemModel).where(_product_missing, partition_clause(owner)))

    def invalid_quantity_rows(self, owner: Optional[Owner], max_quantity: int) -> List[CartItemModel]:
        stmt = (
            select(CartItemModel)
            .where(
                (CartItemModel.quantity <= 0) | (CartItemModel.quantity > max_quantity),
                partition_clause(owner),
            )
            .order_by(CartItemModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def delete_invalid_quantities(self, owner: Optional[Owner], max_quantity: int) -> int:
        return self._bulk(
            delete(CartItemModel).where(
                (CartItemModel.quantity <= 0) | (CartItemModel.quantity > max_quantity),
                partition_clause(owner),
            )
        )

    def duplicate_groups(self, owner: Optional[Owner]):
        stmt = (
            select(
                CartItemModel.product_id,
                CartItemModel.customer_id,
                CartItemModel.ip_address,
                func.count(CartItemModel.id).label("entry_count"),
                func.sum(CartItemModel.quantity).label("total_quantity"),
            )
            .where(partition_clause(owner))
            .group_by(CartItemModel.product_id, CartItemModel.customer_id, CartItemModel.ip_address)
            .having(func.count(CartItemModel.id) > 1)
            .order_by(CartItemModel.product_id)
        )
        return self.db.execute(stmt).all()

    def collapse_group(self, product_id: int, customer_id: Optional[int], ip_address: str, total_quantity: int) -> int:
        """Replaces every row of one duplicate group with a single merged row."""
        owner = Customer(customer_id) if customer_id is not None else Guest(ip_address)
        removed = self.delete_line(product_id, owner)
        self.add_line(product_id, total_quantity, owner)
        return removed
