# storefront/tasks/maintenance.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.services.cart_service import CartService
from storefront.services.integrity_service import IntegrityService
from storefront.utils.logging import get_logger
from storefront.utils.settings import GUEST_CART_TTL_HOURS

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.maintenance.expire_guest_carts_task")
def expire_guest_carts_task(expiry_hours: int = GUEST_CART_TTL_HOURS):
    logger.info("Expire guest carts task started")

    db = SessionLocal()
    try:
        result = CartService(db).cleanup_expired_guest_carts(expiry_hours)
    finally:
        db.close()

    if not result.success:
        logger.error(f"Guest cart expiry failed: {result.kind.value} {result.message}")
    return result.model_dump(mode="json")


@celery_app.task(name="storefront.tasks.maintenance.repair_carts_task")
def repair_carts_task():
    """Integrity repair over every cart partition."""
    logger.info("Cart repair task started")

    db = SessionLocal()
    try:
        service = IntegrityService(db)
        audit = service.audit_cart(None)
        if audit.success and not audit.data.has_issues:
            logger.info("Cart integrity healthy, nothing to repair")
            return audit.model_dump(mode="json")
        result = service.repair_cart(None)
    finally:
        db.close()

    if result.success:
        logger.info(
            f"Cart repair done: {result.data.total_fixes} fixes, {result.data.total_errors} errors"
        )
    return result.model_dump(mode="json")
