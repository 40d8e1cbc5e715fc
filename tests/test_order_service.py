import itertools
import random
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from storefront.data.models import OrderLineModel, OrderModel, PaymentModel
from storefront.domain.owner import Customer
from storefront.domain.results import ErrorKind
from storefront.services.cart_service import CartService
from storefront.services.notification_service import NotificationService, send_order_notification_task
from storefront.services.order_service import OrderService, expected_total, random_invoice_candidate


def count(db, model, *where):
    return db.execute(select(func.count()).select_from(model).where(*where)).scalar_one()


@pytest.fixture()
def carts(catalog):
    return CartService(catalog)


@pytest.fixture()
def snapshot(carts):
    carts.add_to_cart(1, 2, Customer(1))
    carts.add_to_cart(3, 1, Customer(1))
    return carts.get_cart(Customer(1)).data


def fixed(*numbers):
    values = itertools.chain(numbers, itertools.repeat(numbers[-1]))
    return lambda: next(values)


class TestInvoiceNumbers:
    def test_candidate_fits_signed_32_bit(self):
        for _ in range(100):
            assert 1000 <= random_invoice_candidate() < 2**31

    def test_collision_draws_again(self, catalog, snapshot):
        OrderService(catalog, invoice_source=fixed(5550001)).checkout(1, snapshot, "60.00")

        retried = OrderService(catalog, invoice_source=fixed(5550001, 5550001, 5550002))
        assert retried.generate_invoice_number().data == 5550002

    def test_generation_failed_when_every_candidate_is_taken(self, catalog, snapshot):
        OrderService(catalog, invoice_source=fixed(5550001)).checkout(1, snapshot, "60.00")

        result = OrderService(catalog, invoice_source=fixed(5550001)).checkout(1, snapshot, "60.00")

        assert result.kind == ErrorKind.GENERATION_FAILED
        assert result.error.details["attempts"] == 10
        assert count(catalog, OrderModel) == 1

    def test_many_checkouts_never_share_an_invoice(self, catalog, snapshot):
        rng = random.Random(7)
        svc = OrderService(catalog, invoice_source=lambda: rng.randint(7000000, 7000040))

        results = [svc.checkout(1, snapshot, "60.00") for _ in range(25)]

        stored = catalog.execute(select(OrderModel.invoice_no)).scalars().all()
        succeeded = [r.data.invoice_no for r in results if r.success]
        assert len(stored) == len(set(stored)) == len(succeeded)
        assert all(r.kind == ErrorKind.GENERATION_FAILED for r in results if not r.success)


class TestCheckout:
    def test_creates_order_lines_and_one_payment(self, catalog, snapshot):
        result = OrderService(catalog).checkout(1, snapshot, "60.00", "eur", "paypal")

        assert result.success
        receipt = result.data
        assert receipt.status == "pending"
        assert receipt.items_count == snapshot.count == 2
        assert receipt.total_items == 3
        assert count(catalog, OrderLineModel, OrderLineModel.order_id == receipt.order_id) == snapshot.count
        payments = catalog.execute(select(PaymentModel)).scalars().all()
        assert len(payments) == 1
        assert payments[0].amount == Decimal("60.00")
        assert payments[0].currency == "EUR"
        assert payments[0].payment_method == "paypal"
        assert receipt.payment.amount == Decimal("60.00")

    def test_line_failure_rolls_back_everything(self, catalog):
        lines = [{"product_id": 1, "quantity": 1}, {"product_id": 999, "quantity": 1}]

        result = OrderService(catalog, invoice_source=fixed(4242424)).checkout(1, lines, "10.00")

        assert result.kind == ErrorKind.FOREIGN_KEY_CONSTRAINT
        assert count(catalog, OrderModel, OrderModel.invoice_no == 4242424) == 0
        assert count(catalog, OrderLineModel) == 0
        assert count(catalog, PaymentModel) == 0

    def test_unknown_customer(self, catalog, snapshot):
        assert OrderService(catalog).checkout(77, snapshot, "60.00").kind == ErrorKind.FOREIGN_KEY_CONSTRAINT
        assert count(catalog, OrderModel) == 0

    def test_empty_snapshot(self, catalog):
        result = OrderService(catalog).checkout(1, [], "10.00")

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.error.details["issue"] == "empty_cart"

    def test_invalid_input_is_aggregated(self, catalog, snapshot):
        result = OrderService(catalog).checkout(None, snapshot, "-5", "XX", "cash")

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.error.details["failed_fields"] == 4
        assert count(catalog, OrderModel) == 0

    def test_invalid_status(self, catalog, snapshot):
        result = OrderService(catalog).checkout(1, snapshot, "60.00", order_status="lost")
        assert result.kind == ErrorKind.VALIDATION_ERROR


class TestCreateOrderFromCart:
    def test_full_checkout(self, catalog, carts):
        carts.add_to_cart(1, 2, Customer(1))
        # 20.00 + 8% tax + 5.99 shipping
        result = OrderService(catalog).create_order_from_cart(1, "27.59", None, "simulated_success")

        assert result.success
        assert result.data.status == "confirmed"
        assert result.data.cart_emptied
        assert result.data.payment_method == "simulated_success"
        assert carts.get_cart(Customer(1)).data.count == 0

    def test_free_shipping_over_threshold(self):
        assert expected_total(Decimal("89.00")) == Decimal("96.1200")
        assert expected_total(Decimal("20.00")) == Decimal("27.5900")

    def test_total_mismatch(self, catalog, carts):
        carts.add_to_cart(1, 2, Customer(1))

        result = OrderService(catalog).create_order_from_cart(1, "30.00", None, "simulated_success")

        assert result.error.details["issue"] == "total_mismatch"
        assert carts.get_cart(Customer(1)).data.count == 1

    @pytest.mark.parametrize("method", ["simulated_failure", "simulated_timeout"])
    def test_payment_failure_persists_nothing(self, catalog, carts, method):
        carts.add_to_cart(1, 2, Customer(1))

        result = OrderService(catalog).create_order_from_cart(1, "27.59", None, method)

        assert result.kind == ErrorKind.PAYMENT_FAILED
        assert count(catalog, OrderModel) == 0
        assert carts.get_cart(Customer(1)).data.count == 1

    def test_empty_cart(self, catalog):
        result = OrderService(catalog).create_order_from_cart(1, "10.00", None, "paypal")
        assert result.error.details["issue"] == "empty_cart"

    def test_notification_failure_is_not_fatal(self, catalog, carts, monkeypatch):
        carts.add_to_cart(4, 1, Customer(1))

        def broken(*args, **kwargs):
            raise ConnectionError("broker down")

        monkeypatch.setattr(NotificationService, "send_order_notification", staticmethod(broken))

        assert OrderService(catalog).create_order_from_cart(1, "96.12", "usd", "credit_card").success

    def test_notification_task(self):
        outcome = send_order_notification_task.delay(1, 2, 3, "4.00").get()
        assert outcome["status"] == "sent"


class TestOrderQueries:
    def test_get_order(self, catalog, snapshot):
        created = OrderService(catalog).checkout(1, snapshot, "60.00").data

        order = OrderService(catalog).get_order(created.order_id).data

        assert order.invoice_no == created.invoice_no
        assert [line.title for line in order.lines] == ["Alpha Cable", "Gamma Book"]
        assert order.lines[0].subtotal == Decimal("20.00")

    def test_missing_order(self, catalog):
        assert OrderService(catalog).get_order(12345).kind == ErrorKind.NOT_FOUND
        assert OrderService(catalog).get_order("x").kind == ErrorKind.VALIDATION_ERROR

    def test_customer_orders_newest_first(self, catalog, snapshot):
        svc = OrderService(catalog)
        first = svc.checkout(1, snapshot, "60.00").data
        second = svc.checkout(1, snapshot, "60.00").data

        listing = svc.get_customer_orders(1, limit=-3, offset="bad").data

        assert (listing.limit, listing.offset) == (10, 0)
        assert [o.order_id for o in listing.orders] == [second.order_id, first.order_id]
        assert svc.get_customer_orders(2).data.count == 0
        assert svc.get_customer_orders(1, limit=1, offset=1).data.orders[0].order_id == first.order_id

    def test_statistics(self, catalog, snapshot):
        svc = OrderService(catalog)
        svc.checkout(1, snapshot, "60.00")
        svc.checkout(2, snapshot, "40.00", order_status="confirmed")

        stats = svc.get_order_statistics().data

        assert stats.total_orders == 2
        assert stats.unique_customers == 2
        assert stats.total_revenue == Decimal("100.00")
        assert stats.avg_order_value == Decimal("50.00")
        assert (stats.pending_orders, stats.confirmed_orders, stats.cancelled_orders) == (1, 1, 0)
        assert stats.end_date - stats.start_date == timedelta(days=30)

    def test_statistics_bad_dates(self, catalog):
        svc = OrderService(catalog)
        assert svc.get_order_statistics("yesterday").kind == ErrorKind.VALIDATION_ERROR
        tomorrow = date.today() + timedelta(days=1)
        assert svc.get_order_statistics(tomorrow, date.today()).error.details["issue"] == "invalid_range"


class TestUpdateOrderStatus:
    def test_any_status_may_follow_any_other(self, catalog, snapshot):
        svc = OrderService(catalog)
        order_id = svc.checkout(1, snapshot, "60.00").data.order_id

        assert svc.update_order_status(order_id, "delivered").data.new_status == "delivered"
        assert svc.update_order_status(order_id, "pending").success
        assert svc.get_order(order_id).data.status == "pending"

    def test_missing_order(self, catalog):
        assert OrderService(catalog).update_order_status(999, "shipped").kind == ErrorKind.NOT_FOUND

    def test_invalid_status(self, catalog, snapshot):
        svc = OrderService(catalog)
        order_id = svc.checkout(1, snapshot, "60.00").data.order_id
        assert svc.update_order_status(order_id, "teleported").kind == ErrorKind.VALIDATION_ERROR
