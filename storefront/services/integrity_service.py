# storefront/services/integrity_service.py
"""
Cart integrity auditor.

Scans a cart partition (or every partition when owner is None) for lines
pointing at deleted products, lines with quantities outside 1..MAX_CART_QUANTITY
and repeated (product, owner) keys, and repairs them on request.
"""
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.error_classifier import classify, returns_result
from storefront.domain.owner import Owner
from storefront.domain.results import ErrorKind, Result
from storefront.domain.schemas import (
    CartRow,
    DuplicateGroup,
    IntegrityIssue,
    IntegrityReport,
    ProductExistence,
    ProductSnapshot,
    RepairAction,
    RepairOptions,
    RepairReport,
)
from storefront.domain.validation import validate_owner, validate_product_id
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger
from storefront.utils.settings import MAX_CART_QUANTITY

logger = get_logger(__name__)

SEVERITIES = {
    "orphaned_products": "medium",
    "invalid_quantities": "high",
    "duplicate_entries": "medium",
}

DESCRIPTIONS = {
    "orphaned_products": "Cart contains items referencing deleted products",
    "invalid_quantities": "Cart contains items with invalid quantities",
    "duplicate_entries": "Cart contains duplicate product entries",
}


def _partition(owner: Any) -> Result:
    # None is a full scan, used by the scheduled repair
    if owner is None:
        return Result.ok(None)
    return validate_owner(owner)


def _identity(owner: Optional[Owner]) -> dict:
    if owner is None:
        return {"customer_id": None, "ip_address": None}
    return owner.identity()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _rows(lines) -> list:
    return [
        CartRow(
            product_id=line.product_id,
            customer_id=line.customer_id,
            ip_address=line.ip_address,
            quantity=line.quantity,
        )
        for line in lines
    ]


class IntegrityService:
    def __init__(self, db: Session):
        self.db = db
        self.carts = CartRepo(db)
        self.products = ProductRepo(db)

    # scans

    @returns_result("find_orphans")
    def find_orphans(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition
        return Result.ok(_rows(self.carts.orphan_rows(partition.data)))

    @returns_result("find_invalid_quantities")
    def find_invalid_quantities(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition
        return Result.ok(_rows(self.carts.invalid_quantity_rows(partition.data, MAX_CART_QUANTITY)))

    @returns_result("find_duplicates")
    def find_duplicates(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition
        groups = [
            DuplicateGroup(
                product_id=g.product_id,
                customer_id=g.customer_id,
                ip_address=g.ip_address,
                entry_count=g.entry_count,
                total_quantity=int(g.total_quantity),
            )
            for g in self.carts.duplicate_groups(partition.data)
        ]
        return Result.ok(groups)

    @returns_result("verify_cart_integrity")
    def verify(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition
        owner = partition.data

        scans = (
            ("orphaned_products", self.find_orphans(owner)),
            ("invalid_quantities", self.find_invalid_quantities(owner)),
            ("duplicate_entries", self.find_duplicates(owner)),
        )

        issues = []
        for issue_type, scan in scans:
            if not scan.success:
                return scan
            if scan.data:
                issues.append(
                    IntegrityIssue(
                        issue_type=issue_type,
                        severity=SEVERITIES[issue_type],
                        description=DESCRIPTIONS[issue_type],
                        affected_count=len(scan.data),
                        affected_items=[item.model_dump() for item in scan.data],
                    )
                )

        report = IntegrityReport(
            integrity_status="issues_found" if issues else "healthy",
            has_issues=bool(issues),
            has_critical_issues=any(i.severity == "high" for i in issues),
            total_issues=len(issues),
            issues=issues,
            checked_at=_now(),
            **_identity(owner),
        )
        if issues:
            logger.warning(
                f"Integrity check found {len(issues)} issue types: "
                f"{', '.join(i.issue_type for i in issues)}"
            )
        return Result.ok(report)

    audit_cart = verify

    # repairs

    @returns_result("remove_orphaned_items")
    def remove_orphaned(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition

        with transaction(self.db):
            removed = self.carts.delete_orphans(partition.data)

        if removed == 0:
            return Result.ok({"removed_count": 0, "message": "No orphaned cart items found"})
        logger.info(f"Removed {removed} orphaned cart items")
        return Result.ok(
            {"removed_count": removed, "message": f"Successfully removed {removed} orphaned cart items"}
        )

    @returns_result("fix_invalid_quantities")
    def fix_invalid_quantities(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition

        with transaction(self.db):
            removed = self.carts.delete_invalid_quantities(partition.data, MAX_CART_QUANTITY)

        if removed == 0:
            return Result.ok({"fixed_count": 0, "message": "No invalid quantities found"})
        logger.info(f"Removed {removed} cart items with invalid quantities")
        return Result.ok(
            {"fixed_count": removed, "message": f"Successfully fixed {removed} invalid quantity items"}
        )

    @returns_result("merge_duplicate_entries")
    def merge_duplicates(self, owner: Optional[Owner] = None) -> Result:
        partition = _partition(owner)
        if not partition.success:
            return partition

        merged = 0
        failures = []
        with transaction(self.db) as tx:
            for group in self.carts.duplicate_groups(partition.data):
                try:
                    with self.db.begin_nested():
                        self.carts.collapse_group(
                            group.product_id,
                            group.customer_id,
                            group.ip_address,
                            int(group.total_quantity),
                        )
                except SQLAlchemyError as exc:
                    failures.append(classify(exc, "merge_duplicate_entries", product_id=group.product_id))
                    continue
                merged += 1

            if failures and merged == 0:
                tx.mark_rollback()

        if failures and merged == 0:
            return Result.from_failure(failures[0])
        if merged == 0:
            return Result.ok({"merged_count": 0, "message": "No duplicate entries found"})

        logger.info(f"Merged {merged} duplicate cart groups, {len(failures)} failed")
        return Result.ok(
            {
                "merged_count": merged,
                "failed_count": len(failures),
                "message": f"Successfully merged {merged} duplicate entries",
            }
        )

    @returns_result("fix_cart_integrity_issues")
    def fix(
        self,
        owner: Optional[Owner] = None,
        options: Union[RepairOptions, Mapping[str, Any], None] = None,
    ) -> Result:
        """
        Applies each enabled repair on its own transaction.

        options is a RepairOptions or a plain mapping of the same flags. A
        failed repair is reported next to the successful ones and does not
        stop the remaining repairs.
        """
        partition = _partition(owner)
        if not partition.success:
            return partition
        owner = partition.data

        if options is None:
            options = RepairOptions()
        elif not isinstance(options, RepairOptions):
            try:
                options = RepairOptions.model_validate(options)
            except ValidationError as exc:
                return Result.fail(
                    ErrorKind.VALIDATION_ERROR,
                    "Invalid repair options",
                    field="options",
                    issue="invalid_options",
                    value=[".".join(str(p) for p in err["loc"]) for err in exc.errors()],
                )

        repairs = (
            ("remove_orphaned", options.remove_orphaned, self.remove_orphaned, "removed_count"),
            ("fix_quantities", options.fix_quantities, self.fix_invalid_quantities, "fixed_count"),
            ("merge_duplicates", options.merge_duplicates, self.merge_duplicates, "merged_count"),
        )

        applied = []
        errors = []
        for fix_type, enabled, repair, counter in repairs:
            if not enabled:
                continue
            outcome = repair(owner)
            if outcome.success:
                applied.append(
                    RepairAction(
                        fix_type=fix_type,
                        status="success",
                        items_affected=outcome.data[counter],
                        message=outcome.data["message"],
                    )
                )
            else:
                logger.warning(f"Repair {fix_type} failed: {outcome.message}")
                errors.append(RepairAction(fix_type=fix_type, status="failed", message=outcome.message))

        return Result.ok(
            RepairReport(
                fixes_applied=applied,
                total_fixes=len(applied),
                errors=errors,
                total_errors=len(errors),
                fixed_at=_now(),
                **_identity(owner),
            )
        )

    repair_cart = fix

    @returns_result("check_cart_item_integrity")
    def check_line(self, product_id: Any, owner: Owner) -> Result:
        """Drops the owner's line for product_id when the product no longer exists."""
        product = validate_product_id(product_id)
        if not product.success:
            return product
        checked_owner = validate_owner(owner)
        if not checked_owner.success:
            return checked_owner
        product_id, owner = product.data, checked_owner.data

        found = self.products.get_product(product_id)
        if found is not None:
            return Result.ok(
                ProductExistence(
                    product_id=product_id,
                    exists=True,
                    product=ProductSnapshot.model_validate(found),
                )
            )

        with transaction(self.db):
            removed = self.carts.delete_line(product_id, owner)

        logger.warning(f"Product {product_id} no longer exists, removed {removed} lines of {owner.describe()}")
        return Result.fail(
            ErrorKind.ORPHANED_PRODUCT,
            "Product no longer exists and has been removed from cart",
            product_id=product_id,
            had_orphaned_item=removed > 0,
            auto_removed=True,
            **owner.identity(),
        )
