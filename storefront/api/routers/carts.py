# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.responses import request_owner, to_response
from storefront.data.database import get_db
from storefront.domain.results import Result
from storefront.domain.schemas import ItemIn, QuantityIn, TransferIn
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("")
def get_cart(
    clean: bool = Query(default=False),
    owner: Result = Depends(request_owner),
    db: Session = Depends(get_db),
):
    if not owner.success:
        return to_response(owner)
    svc = CartService(db)
    if clean:
        return to_response(svc.get_valid_cart(owner.data))
    return to_response(svc.get_cart(owner.data))


@router.delete("")
def empty_cart(owner: Result = Depends(request_owner), db: Session = Depends(get_db)):
    if not owner.success:
        return to_response(owner)
    return to_response(CartService(db).empty_cart(owner.data))


@router.get("/count")
def get_cart_count(owner: Result = Depends(request_owner), db: Session = Depends(get_db)):
    if not owner.success:
        return to_response(owner)
    return to_response(CartService(db).get_cart_count(owner.data))


@router.post("/items")
def add_item(
    payload: ItemIn,
    owner: Result = Depends(request_owner),
    db: Session = Depends(get_db),
):
    if not owner.success:
        return to_response(owner)
    result = CartService(db).add_to_cart(payload.product_id, payload.quantity, owner.data)
    return to_response(result, success_status=201)


@router.patch("/items/{product_id}")
def update_item(
    product_id: str,
    payload: QuantityIn,
    owner: Result = Depends(request_owner),
    db: Session = Depends(get_db),
):
    if not owner.success:
        return to_response(owner)
    return to_response(CartService(db).update_cart_quantity(product_id, payload.quantity, owner.data))


@router.delete("/items/{product_id}")
def remove_item(
    product_id: str,
    owner: Result = Depends(request_owner),
    db: Session = Depends(get_db),
):
    if not owner.success:
        return to_response(owner)
    return to_response(CartService(db).remove_from_cart(product_id, owner.data))


@router.post("/transfer")
def transfer_cart(payload: TransferIn, db: Session = Depends(get_db)):
    result = CartService(db).transfer_guest_cart(payload.ip_address, payload.customer_id)
    return to_response(result)
