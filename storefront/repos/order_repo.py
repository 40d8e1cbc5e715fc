# storefront/repos/order_repo.py
from datetime import date
from decimal import Decimal
from typing import List

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_line import OrderLineModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.product import ProductModel


class OrderRepo:
    """Never commits, OrderService owns the checkout transaction."""

    def __init__(self, db: Session):
        self.db = db

    def invoice_exists(self, invoice_no: int) -> bool:
        found = self.db.execute(
            select(OrderModel.id).where(OrderModel.invoice_no == invoice_no).limit(1)
        ).first()
        return found is not None

    def create_order(self, customer_id: int, invoice_no: int, status: str) -> OrderModel:
        order = OrderModel(
            customer_id=customer_id,
            invoice_no=invoice_no,
            order_date=date.today(),
            status=status,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def add_line(self, order_id: int, product_id: int, quantity: int) -> OrderLineModel:
        line = OrderLineModel(order_id=order_id, product_id=product_id, quantity=quantity)
        self.db.add(line)
        self.db.flush()
        return line

    def add_payment(
        self,
        order_id: int,
        customer_id: int,
        amount: Decimal,
        currency: str,
        payment_method: str,
    ) -> PaymentModel:
        payment = PaymentModel(
            order_id=order_id,
            customer_id=customer_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            payment_date=date.today(),
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_payment(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.order_id == order_id)
        ).scalar_one_or_none()

    def get_lines(self, order_id: int):
        stmt = (
            select(
                OrderLineModel.product_id,
                OrderLineModel.quantity,
                ProductModel.title,
                ProductModel.price,
            )
            .join(ProductModel, ProductModel.id == OrderLineModel.product_id)
            .where(OrderLineModel.order_id == order_id)
            .order_by(ProductModel.title.asc())
        )
        return self.db.execute(stmt).all()

    def get_customer_orders(self, customer_id: int, limit: int, offset: int) -> List:
        stmt = (
            select(OrderModel, PaymentModel)
            .outerjoin(PaymentModel, PaymentModel.order_id == OrderModel.id)
            .where(OrderModel.customer_id == customer_id)
            .order_by(OrderModel.order_date.desc(), OrderModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return self.db.execute(stmt).all()

    def update_status(self, order_id: int, status: str) -> int:
        result = self.db.execute(
            update(OrderModel).where(OrderModel.id == order_id).values(status=status),
            execution_options={"synchronize_session": False},
        )
        self.db.expire_all()
        return result.rowcount

    def statistics(self, start: date, end: date):
        stmt = (
            select(
                func.count(func.distinct(OrderModel.id)),
                func.count(func.distinct(OrderModel.customer_id)),
                func.coalesce(func.sum(PaymentModel.amount), 0),
                func.coalesce(func.avg(PaymentModel.amount), 0),
                func.count(case((OrderModel.status == "pending", 1))),
                func.count(case((OrderModel.status == "confirmed", 1))),
                func.count(case((OrderModel.status == "cancelled", 1))),
            )
            .select_from(OrderModel)
            .outerjoin(PaymentModel, PaymentModel.order_id == OrderModel.id)
            .where(OrderModel.order_date.between(start, end))
        )
        return self.db.execute(stmt).one()
