# storefront/api/routers/orders.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.responses import to_response
from storefront.data.database import get_db
from storefront.domain.schemas import CheckoutIn, StatusIn
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/checkout")
def checkout(payload: CheckoutIn, db: Session = Depends(get_db)):
    result = OrderService(db).create_order_from_cart(
        payload.customer_id,
        payload.total_amount,
        payload.currency,
        payload.payment_method,
    )
    return to_response(result, success_status=201, context="order")


@router.get("/statistics")
def order_statistics(
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    return to_response(OrderService(db).get_order_statistics(start_date, end_date), context="order")


@router.get("")
def customer_orders(
    customer_id: Optional[str] = Query(default=None),
    limit: int = Query(default=10),
    offset: int = Query(default=0),
    db: Session = Depends(get_db),
):
    result = OrderService(db).get_customer_orders(customer_id, limit, offset)
    return to_response(result, context="order")


@router.get("/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return to_response(OrderService(db).get_order(order_id), context="order")


@router.patch("/{order_id}/status")
def update_status(order_id: str, payload: StatusIn, db: Session = Depends(get_db)):
    return to_response(OrderService(db).update_order_status(order_id, payload.status), context="order")
