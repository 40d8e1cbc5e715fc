# storefront/services/order_service.py
import random
import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Tuple

from sqlalchemy.orm import Session
from tenacity import RetryError

from storefront.data.database import transaction
from storefront.data.error_classifier import returns_result
from storefront.domain.owner import Customer
from storefront.domain.results import ErrorKind, Result
from storefront.domain.schemas import (
    CheckoutReceipt,
    CustomerOrders,
    OrderLineOut,
    OrderReceipt,
    OrderStatistics,
    OrderSummary,
    PaymentOut,
    StatusChange,
)
from storefront.domain.validation import (
    validate_checkout_input,
    validate_customer_id,
    validate_date,
    validate_order_id,
    validate_order_status,
    validate_product_id,
    validate_quantity,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.cart_service import CartService
from storefront.services.notification_service import NotificationService
from storefront.services.payment_simulator import simulate_payment
from storefront.utils.logging import get_logger
from storefront.utils.retry import InvoiceCollision, invoice_retry
from storefront.utils.settings import (
    FREE_SHIPPING_THRESHOLD,
    INVOICE_MAX_ATTEMPTS,
    SHIPPING_COST,
    TAX_RATE,
)

logger = get_logger(__name__)

CENT = Decimal("0.01")
TOTAL_TOLERANCE = Decimal("0.01")
DEFAULT_ORDERS_LIMIT = 10
MAX_ORDERS_LIMIT = 100
STATISTICS_DAYS = 30


def random_invoice_candidate() -> int:
    """
    Coarse timestamp plus a random suffix, always below 2**31.

    Collisions are possible, the caller checks and retries. The unique index
    on orders.invoice_no stays the final guard.
    """
    return (int(time.time()) % 100000) * 10000 + random.randint(1000, 9999)


def _field(line: Any, name: str) -> Any:
    if isinstance(line, dict):
        return line.get(name)
    return getattr(line, name, None)


def _snapshot_lines(cart_snapshot: Any) -> Result:
    """(product_id, quantity) pairs out of a CartSnapshot, a dict or a plain list."""
    if cart_snapshot is None:
        items: Iterable = []
    elif isinstance(cart_snapshot, dict):
        items = cart_snapshot.get("items") or []
    elif hasattr(cart_snapshot, "items") and not isinstance(cart_snapshot, (list, tuple)):
        items = cart_snapshot.items or []
    else:
        items = cart_snapshot

    lines: List[Tuple[int, int]] = []
    for item in items:
        product = validate_product_id(_field(item, "product_id"))
        if not product.success:
            return product
        quantity = validate_quantity(_field(item, "quantity"))
        if not quantity.success:
            return quantity
        lines.append((product.data, quantity.data))

    if not lines:
        return Result.fail(
            ErrorKind.VALIDATION_ERROR,
            "Cannot create an order from an empty cart",
            field="cart",
            issue="empty_cart",
            value=0,
        )
    return Result.ok(lines)


def expected_total(subtotal: Decimal) -> Decimal:
    shipping = Decimal("0") if subtotal >= FREE_SHIPPING_THRESHOLD else SHIPPING_COST
    return subtotal + subtotal * TAX_RATE + shipping


class OrderService:
    """
    Orders, order lines and payments.

    checkout() writes all three in one transaction: either the order header,
    every line and the payment are stored, or none of them is.
    """

    def __init__(self, db: Session, invoice_source: Callable[[], int] = random_invoice_candidate):
        self.db = db
        self.repo = OrderRepo(db)
        self.invoice_source = invoice_source
        self.notification_service = NotificationService()

    # invoice numbers

    @invoice_retry()
    def _draw_invoice(self) -> int:
        candidate = self.invoice_source()
        if self.repo.invoice_exists(candidate):
            logger.warning(f"Invoice number {candidate} already taken, drawing again")
            raise InvoiceCollision(candidate)
        return candidate

    def _generate_invoice(self) -> Result:
        try:
            return Result.ok(self._draw_invoice())
        except RetryError:
            logger.error(f"No free invoice number after {INVOICE_MAX_ATTEMPTS} attempts")
            return Result.fail(
                ErrorKind.GENERATION_FAILED,
                f"Failed to generate unique invoice number after {INVOICE_MAX_ATTEMPTS} attempts",
                attempts=INVOICE_MAX_ATTEMPTS,
            )

    @returns_result("generate_invoice_number")
    def generate_invoice_number(self) -> Result:
        return self._generate_invoice()

    # commands

    @returns_result("checkout")
    def checkout(
        self,
        customer_id: Any,
        cart_snapshot: Any,
        total: Any,
        currency: Any = "USD",
        payment_method: Any = "simulated_success",
        order_status: Any = "pending",
    ) -> Result:
        checked = validate_checkout_input(
            {
                "customer_id": customer_id,
                "total_amount": total,
                "currency": currency,
                "payment_method": payment_method,
            }
        )
        if not checked.success:
            return checked
        status = validate_order_status(order_status)
        if not status.success:
            return status
        lines = _snapshot_lines(cart_snapshot)
        if not lines.success:
            return lines

        values = checked.data
        customer_id = values["customer_id"]

        with transaction(self.db) as tx:
            invoice = self._generate_invoice()
            if not invoice.success:
                tx.mark_rollback()
                return invoice

            order = self.repo.create_order(customer_id, invoice.data, status.data)
            for product_id, quantity in lines.data:
                self.repo.add_line(order.id, product_id, quantity)
            self.repo.add_payment(
                order.id,
                customer_id,
                values["total_amount"],
                values["currency"],
                values["payment_method"],
            )
            order_id = order.id

        logger.info(
            f"Order {order_id} (invoice {invoice.data}) created for customer {customer_id}: "
            f"{len(lines.data)} lines, {values['total_amount']} {values['currency']}"
        )
        return Result.ok(self._receipt(order_id))

    @returns_result("create_order_from_cart")
    def create_order_from_cart(
        self,
        customer_id: Any,
        total_amount: Any,
        currency: Any = None,
        payment_method: Any = None,
    ) -> Result:
        """
        Checkout of the customer's stored cart.

        1. validates the input and loads the cart
        2. recomputes tax and shipping and compares with the client total
        3. simulates the payment
        4. stores the order, then empties the cart and queues a notification
        """
        checked = validate_checkout_input(
            {
                "customer_id": customer_id,
                "total_amount": total_amount,
                "currency": currency,
                "payment_method": payment_method,
            }
        )
        if not checked.success:
            return checked
        values = checked.data
        customer = Customer(values["customer_id"])

        carts = CartService(self.db)
        cart = carts.get_cart(customer)
        if not cart.success:
            return cart
        snapshot = cart.data
        if snapshot.count == 0:
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Cart is empty",
                field="cart",
                issue="empty_cart",
                customer_id=customer.customer_id,
            )

        expected = expected_total(snapshot.total_amount)
        if abs(expected - values["total_amount"]) > TOTAL_TOLERANCE:
            logger.warning(
                f"Checkout total mismatch for customer {customer.customer_id}: "
                f"got {values['total_amount']}, expected {expected.quantize(CENT)}"
            )
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Order total does not match cart contents",
                field="total_amount",
                issue="total_mismatch",
                value=values["total_amount"],
                expected_total=expected.quantize(CENT),
                cart_total=snapshot.total_amount,
            )

        payment = simulate_payment(values["payment_method"], customer.customer_id)
        if not payment.success:
            return payment

        created = self.checkout(
            customer.customer_id,
            snapshot,
            values["total_amount"],
            values["currency"],
            values["payment_method"],
            order_status="confirmed",
        )
        if not created.success:
            return created
        receipt = created.data

        emptied = carts.empty_cart(customer)
        if not emptied.success:
            logger.warning(
                f"Order {receipt.order_id} stored but emptying the cart failed: {emptied.message}"
            )

        try:
            self.notification_service.send_order_notification(
                customer.customer_id, receipt.order_id, receipt.invoice_no, receipt.total_amount
            )
        except Exception as e:
            logger.warning(f"Failed to queue notification for order {receipt.order_id}: {e}")

        return Result.ok(
            CheckoutReceipt(
                **receipt.model_dump(),
                payment_method=values["payment_method"],
                cart_emptied=emptied.success,
                message="Order placed successfully",
            )
        )

    @returns_result("update_order_status")
    def update_order_status(self, order_id: Any, status: Any) -> Result:
        checked_id = validate_order_id(order_id)
        if not checked_id.success:
            return checked_id
        checked_status = validate_order_status(status)
        if not checked_status.success:
            return checked_status
        order_id, status = checked_id.data, checked_status.data

        with transaction(self.db) as tx:
            if self.repo.get_order(order_id) is None:
                tx.mark_rollback()
                return Result.fail(ErrorKind.NOT_FOUND, "Order not found", order_id=order_id)
            affected = self.repo.update_status(order_id, status)

        logger.info(f"Order {order_id} status set to {status}")
        return Result.ok(StatusChange(order_id=order_id, new_status=status, affected_rows=affected))

    # queries

    @returns_result("get_order")
    def get_order(self, order_id: Any) -> Result:
        checked = validate_order_id(order_id)
        if not checked.success:
            return checked

        if self.repo.get_order(checked.data) is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Order not found", order_id=checked.data)
        return Result.ok(self._receipt(checked.data))

    @returns_result("get_customer_orders")
    def get_customer_orders(self, customer_id: Any, limit: Any = DEFAULT_ORDERS_LIMIT, offset: Any = 0) -> Result:
        customer = validate_customer_id(customer_id)
        if not customer.success:
            return customer
        if customer.data is None:
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Customer ID is required",
                field="customer_id",
                issue="missing_or_empty",
                value=customer_id,
            )

        if isinstance(limit, bool) or not isinstance(limit, int) or not 0 < limit <= MAX_ORDERS_LIMIT:
            limit = DEFAULT_ORDERS_LIMIT
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            offset = 0

        orders = [
            OrderSummary(
                order_id=order.id,
                customer_id=order.customer_id,
                invoice_no=order.invoice_no,
                status=order.status,
                order_date=order.order_date,
                payment_id=payment.id if payment else None,
                amount=payment.amount if payment else None,
                currency=payment.currency if payment else None,
            )
            for order, payment in self.repo.get_customer_orders(customer.data, limit, offset)
        ]
        return Result.ok(
            CustomerOrders(
                customer_id=customer.data,
                orders=orders,
                count=len(orders),
                limit=limit,
                offset=offset,
            )
        )

    @returns_result("get_order_statistics")
    def get_order_statistics(self, start_date: Any = None, end_date: Any = None) -> Result:
        end = validate_date(end_date, "end_date") if end_date is not None else Result.ok(date.today())
        if not end.success:
            return end
        if start_date is not None:
            start = validate_date(start_date, "start_date")
        else:
            start = Result.ok(end.data - timedelta(days=STATISTICS_DAYS))
        if not start.success:
            return start
        if start.data > end.data:
            return Result.fail(
                ErrorKind.VALIDATION_ERROR,
                "Start date must not be after end date",
                field="start_date",
                issue="invalid_range",
                value=str(start.data),
            )

        orders, customers, revenue, average, pending, confirmed, cancelled = self.repo.statistics(
            start.data, end.data
        )
        return Result.ok(
            OrderStatistics(
                start_date=start.data,
                end_date=end.data,
                total_orders=orders,
                unique_customers=customers,
                total_revenue=Decimal(str(revenue)).quantize(CENT),
                avg_order_value=Decimal(str(average)).quantize(CENT),
                pending_orders=pending,
                confirmed_orders=confirmed,
                cancelled_orders=cancelled,
            )
        )

    def _receipt(self, order_id: int) -> OrderReceipt:
        order = self.repo.get_order(order_id)
        payment = self.repo.get_payment(order_id)

        lines = []
        for row in self.repo.get_lines(order_id):
            price = Decimal(row.price)
            lines.append(
                OrderLineOut(
                    product_id=row.product_id,
                    quantity=row.quantity,
                    title=row.title,
                    price=price,
                    subtotal=(price * row.quantity).quantize(CENT),
                )
            )

        payment_out = None
        if payment is not None:
            payment_out = PaymentOut(
                payment_id=payment.id,
                amount=payment.amount,
                currency=payment.currency,
                payment_method=payment.payment_method,
                payment_date=payment.payment_date,
            )

        return OrderReceipt(
            order_id=order.id,
            customer_id=order.customer_id,
            invoice_no=order.invoice_no,
            status=order.status,
            order_date=order.order_date,
            total_amount=payment.amount if payment else None,
            currency=payment.currency if payment else None,
            payment=payment_out,
            lines=lines,
            items_count=len(lines),
            total_items=sum(line.quantity for line in lines),
        )
