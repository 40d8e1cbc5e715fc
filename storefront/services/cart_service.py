# storefront/services/cart_service.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.error_classifier import classify, returns_result
from storefront.domain.owner import Customer, Guest, Owner
from storefront.domain.results import ErrorKind, Result
from storefront.domain.schemas import (
    CartCount,
    CartItemView,
    CartLine,
    CartSnapshot,
    EmptiedCart,
    GuestCartCleanup,
    GuestCartSession,
    GuestCartStatistics,
    LineLookup,
    RemovedLine,
    TransferReport,
)
from storefront.domain.validation import (
    validate_add_to_cart_input,
    validate_customer_id,
    validate_ip_address,
    validate_owner,
    validate_product_id,
    validate_quantity,
)
from storefront.repos.cart_repo import CartRepo
from storefront.utils.logging import get_logger
from storefront.utils.settings import GUEST_CART_TTL_HOURS

logger = get_logger(__name__)

CENT = Decimal("0.01")


class CartService:
    """
    Cart store for both kinds of owner.

    Commands (add, update, remove, empty, transfer) run inside a scoped
    transaction, queries only read. Every public method returns a Result,
    storage exceptions are turned into classified failures by returns_result.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CartRepo(db)

    # commands

    @returns_result("add_to_cart")
    def add_to_cart(self, product_id: Any, quantity: Any = 1, owner: Owner = None) -> Result:
        checked = validate_add_to_cart_input(
            {"product_id": product_id, "quantity": quantity, "owner": owner}
        )
        if not checked.success:
            return checked

        product_id = checked.data["product_id"]
        quantity = checked.data["quantity"]
        owner = checked.data["owner"]

        with transaction(self.db):
            lines = self.repo.get_lines(product_id, owner, for_update=True)
            if lines:
                current = sum(line.quantity for line in lines)
                new_quantity = current + quantity
                logger.info(
                    f"Product {product_id} already in cart of {owner.describe()}, "
                    f"quantity {current} -> {new_quantity}"
                )
                self.repo.write_quantity(lines, new_quantity)
                action = "updated"
            else:
                new_quantity = quantity
                logger.info(f"Adding product {product_id} x{quantity} to cart of {owner.describe()}")
                self.repo.add_line(product_id, quantity, owner)
                action = "added"

        return Result.ok(
            CartLine(product_id=product_id, quantity=new_quantity, action=action, **owner.identity())
        )

    @returns_result("update_cart_quantity")
    def update_cart_quantity(self, product_id: Any, quantity: Any, owner: Owner) -> Result:
        product = validate_product_id(product_id)
        if not product.success:
            return product
        amount = validate_quantity(quantity, allow_zero=True)
        if not amount.success:
            return amount
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner

        product_id, quantity, owner = product.data, amount.data, checked_owner.data

        if quantity == 0:
            return self.remove_from_cart(product_id, owner)

        with transaction(self.db) as tx:
            lines = self.repo.get_lines(product_id, owner, for_update=True)
            if not lines:
                tx.mark_rollback()
                return Result.fail(
                    ErrorKind.NOT_FOUND,
                    "Cart item not found",
                    product_id=product_id,
                    **owner.identity(),
                )
            self.repo.write_quantity(lines, quantity)

        logger.info(f"Set quantity of product {product_id} to {quantity} for {owner.describe()}")
        return Result.ok(
            CartLine(product_id=product_id, quantity=quantity, action="updated", **owner.identity())
        )

    @returns_result("remove_from_cart")
    def remove_from_cart(self, product_id: Any, owner: Owner) -> Result:
        product = validate_product_id(product_id)
        if not product.success:
            return product
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner

        product_id, owner = product.data, checked_owner.data

        with transaction(self.db):
            affected = self.repo.delete_line(product_id, owner)

        logger.info(f"Removed product {product_id} from cart of {owner.describe()} ({affected} rows)")
        return Result.ok(RemovedLine(product_id=product_id, affected_rows=affected, **owner.identity()))

    @returns_result("empty_cart")
    def empty_cart(self, owner: Owner) -> Result:
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner
        owner = checked_owner.data

        with transaction(self.db):
            removed = self.repo.delete_all(owner)

        logger.info(f"Emptied cart of {owner.describe()} ({removed} lines)")
        return Result.ok(EmptiedCart(removed_items=removed, **owner.identity()))

    @returns_result("transfer_guest_cart")
    def transfer_guest_cart(self, from_ip: Any, to_customer_id: Any) -> Result:
        """
        Moves a guest cart to a customer after login.

        Every guest product runs in its own savepoint: it is either merged
        into the customer's line for the same product (quantities summed) or
        re-keyed to the customer. Leftover guest lines are deleted afterwards.
        The transfer commits when at least one product succeeded or nothing
        failed, and rolls back only when every attempted product failed.
        """
        if from_ip is None or str(from_ip).strip() == "":
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Guest IP address is required for cart transfer",
                field="ip_address",
                issue="missing_or_empty",
                value=from_ip,
            )
        ip = validate_ip_address(from_ip)
        if not ip.success:
            return ip

        customer = validate_customer_id(to_customer_id)
        if not customer.success:
            return customer
        if customer.data is None:
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Customer ID is required for cart transfer",
                field="customer_id",
                issue="missing_or_empty",
                value=to_customer_id,
            )

        guest = Guest(ip.data)
        target = Customer(customer.data)
        transferred = 0
        merged = 0
        errors = []

        logger.info(f"Transferring cart of {guest.describe()} to {target.describe()}")

        with transaction(self.db) as tx:
            for product_id, quantity in self.repo.quantities_by_product(guest).items():
                try:
                    with self.db.begin_nested():
                        held = self.repo.get_lines(product_id, target, for_update=True)
                        if held:
                            self.repo.write_quantity(held, sum(line.quantity for line in held) + quantity)
                            self.repo.delete_line(product_id, guest)
                            was_merge = True
                        else:
                            self.repo.rekey_lines(product_id, guest, target, quantity)
                            was_merge = False
                except SQLAlchemyError as exc:
                    failure = classify(exc, "transfer_guest_cart", product_id=product_id)
                    logger.warning(f"Transfer of product {product_id} failed: {failure.kind.value}")
                    errors.append(f"Product {product_id}: {failure.message}")
                    continue

                if was_merge:
                    merged += 1
                else:
                    transferred += 1

            succeeded = transferred + merged
            removed = self.repo.delete_all(guest)

            if errors and succeeded == 0:
                tx.mark_rollback()

        if errors and succeeded == 0:
            logger.error(f"Cart transfer to {target.describe()} failed for every product")
            return Result.fail(
                ErrorKind.TRANSFER_FAILED,
                "Cart transfer failed for all items",
                customer_id=target.customer_id,
                ip_address=guest.ip_address,
                errors=errors,
            )

        logger.info(
            f"Cart transfer to {target.describe()} done: "
            f"{transferred} transferred, {merged} merged, {len(errors)} failed"
        )
        return Result.ok(
            TransferReport(
                customer_id=target.customer_id,
                ip_address=guest.ip_address,
                transferred_items=transferred,
                merged_items=merged,
                total_processed=succeeded,
                removed_leftovers=removed,
                errors=errors,
            )
        )

    @returns_result("cleanup_expired_guest_carts")
    def cleanup_expired_guest_carts(self, expiry_hours: Any = GUEST_CART_TTL_HOURS) -> Result:
        if isinstance(expiry_hours, bool) or not isinstance(expiry_hours, int) or expiry_hours <= 0:
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Expiry hours must be a positive integer",
                field="expiry_hours",
                issue="not_positive",
                value=expiry_hours,
            )

        cutoff = datetime.now(timezone.utc) - timedelta(hours=expiry_hours)
        with transaction(self.db):
            removed = self.repo.delete_guest_lines_before(cutoff)

        logger.info(f"Removed {removed} guest cart lines older than {expiry_hours}h")
        return Result.ok(GuestCartCleanup(expiry_hours=expiry_hours, removed_items=removed))

    # queries

    @returns_result("get_line")
    def get_line(self, product_id: Any, owner: Owner) -> Result:
        product = validate_product_id(product_id)
        if not product.success:
            return product
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner

        lines = self.repo.get_lines(product.data, checked_owner.data)
        if not lines:
            return Result.ok(LineLookup(product_id=product.data, found=False))
        quantity = sum(line.quantity for line in lines)
        return Result.ok(LineLookup(product_id=product.data, found=True, quantity=quantity))

    @returns_result("get_cart")
    def get_cart(self, owner: Owner) -> Result:
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner
        return Result.ok(self._snapshot(checked_owner.data))

    @returns_result("restore_user_cart")
    def restore_user_cart(self, customer_id: Any) -> Result:
        customer = validate_customer_id(customer_id)
        if not customer.success:
            return customer
        if customer.data is None:
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Customer ID is required to restore a cart",
                field="customer_id",
                issue="missing_or_empty",
                value=customer_id,
            )

        snapshot = self._snapshot(Customer(customer.data))
        logger.info(f"Restored cart for customer {customer.data}: {snapshot.count} lines")
        return Result.ok(snapshot)

    @returns_result("get_cart_count")
    def get_cart_count(self, owner: Owner) -> Result:
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner

        quantities = self.repo.quantities_by_product(checked_owner.data)
        return Result.ok(CartCount(count=len(quantities), total_items=sum(quantities.values())))

    @returns_result("get_valid_cart")
    def get_valid_cart(self, owner: Owner, auto_clean: bool = True) -> Result:
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner
        owner = checked_owner.data

        if auto_clean:
            try:
                with transaction(self.db):
                    removed = self.repo.delete_orphans(owner)
                if removed:
                    logger.info(f"Removed {removed} orphaned lines from cart of {owner.describe()}")
            except SQLAlchemyError as exc:
                # the snapshot below skips orphans anyway
                classify(exc, "get_valid_cart.cleanup", **owner.identity())

        return Result.ok(self._snapshot(owner))

    @returns_result("guest_cart_statistics")
    def guest_cart_statistics(self) -> Result:
        unique_ips, items, quantity, average = self.repo.guest_statistics()
        return Result.ok(
            GuestCartStatistics(
                unique_guest_ips=unique_ips,
                total_guest_items=items,
                total_guest_quantity=int(quantity),
                avg_items_per_guest=Decimal(str(average)).quantize(CENT),
            )
        )

    @returns_result("validate_guest_cart_session")
    def validate_guest_cart_session(self, ip_address: Any) -> Result:
        ip = validate_ip_address(ip_address)
        if not ip.success:
            return ip

        quantities = self.repo.quantities_by_product(Guest(ip.data))
        return Result.ok(
            GuestCartSession(
                ip_address=ip.data,
                has_cart_items=bool(quantities),
                item_count=len(quantities),
                total_quantity=sum(quantities.values()),
            )
        )

    def _snapshot(self, owner: Owner) -> CartSnapshot:
        items = []
        for row in self.repo.list_with_products(owner):
            price = Decimal(row.price)
            items.append(
                CartItemView(
                    product_id=row.product_id,
                    quantity=int(row.quantity),
                    title=row.title,
                    price=price,
                    image=row.image,
                    description=row.description,
                    category=row.category,
                    brand=row.brand,
                    subtotal=(price * int(row.quantity)).quantize(CENT),
                )
            )

        return CartSnapshot(
            items=items,
            count=len(items),
            total_items=sum(i.quantity for i in items),
            total_amount=sum((i.subtotal for i in items), Decimal("0.00")),
            **owner.identity(),
        )
