from datetime import date

from sqlalchemy import Column, Date, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    invoice_no = Column(Integer, nullable=False, unique=True)

    order_date = Column(Date, nullable=False, default=date.today)
    status = Column(String(20), nullable=False, default="pending")  # pending, confirmed, processing, shipped, delivered, cancelled

    lines = relationship("OrderLineModel", back_populates="order", cascade="all, delete-orphan")
    payment = relationship("PaymentModel", back_populates="order", uselist=False, cascade="all, delete-orphan")
