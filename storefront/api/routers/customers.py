from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.responses import to_response
from storefront.data.database import get_db
from storefront.domain.schemas import CustomerCreate
from storefront.services.customer_service import CustomerService

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("/")
def create_customer(payload: CustomerCreate, db: Session = Depends(get_db)):
    return to_response(CustomerService(db).create_customer(payload), success_status=201)


@router.get("/{customer_id}")
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    return to_response(CustomerService(db).get_customer(customer_id))
