# storefront/services/notification_service.py
from decimal import Decimal

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Queues customer notifications on the Celery broker."""

    @staticmethod
    def send_order_notification(customer_id: int, order_id: int, invoice_no: int, amount: Decimal):
        # Decimal is not JSON serialisable, the task gets a string
        send_order_notification_task.delay(customer_id, order_id, invoice_no, str(amount))


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(customer_id: int, order_id: int, invoice_no: int, amount: str):
    """
    Order confirmation for the customer.

    Only logs for now, a mail or push gateway would be called from here.
    """
    logger.info(
        f"[NOTIFICATION] Customer {customer_id}: order {order_id} "
        f"(invoice {invoice_no}, {amount}) confirmed"
    )
    return {"customer_id": customer_id, "order_id": order_id, "invoice_no": invoice_no, "status": "sent"}
