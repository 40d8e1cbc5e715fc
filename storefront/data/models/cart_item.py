#storefront/data/models/cart_item.py
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartItemModel(Base):
    """
    One cart line, owned either by a customer or by a guest ip.

    product_id has no foreign key on purpose: deleting a product leaves the
    line behind as an orphan, which the integrity service finds and removes.
    There is no unique index on (product_id, owner) either, legacy rows may
    hold duplicates that the integrity service merges.
    """

    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=True)
    ip_address = Column(String(45), nullable=False, default="")

    quantity = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        CheckConstraint(
            "(customer_id IS NULL AND ip_address <> '') OR (customer_id IS NOT NULL AND ip_address = '')",
            name="ck_cart_items_single_owner",
        ),
        Index("ix_cart_items_customer_product", "customer_id", "product_id"),
        Index("ix_cart_items_ip_product", "ip_address", "product_id"),
    )
