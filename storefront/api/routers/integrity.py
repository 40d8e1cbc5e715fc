# storefront/api/routers/integrity.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.responses import request_owner, to_response
from storefront.data.database import get_db
from storefront.domain.results import Result
from storefront.domain.schemas import RepairOptions
from storefront.services.integrity_service import IntegrityService

router = APIRouter(prefix="/cart/integrity", tags=["integrity"])


@router.get("")
def audit_cart(owner: Result = Depends(request_owner), db: Session = Depends(get_db)):
    if not owner.success:
        return to_response(owner)
    return to_response(IntegrityService(db).audit_cart(owner.data))


@router.post("/repair")
def repair_cart(
    options: Optional[RepairOptions] = None,
    owner: Result = Depends(request_owner),
    db: Session = Depends(get_db),
):
    if not owner.success:
        return to_response(owner)
    return to_response(IntegrityService(db).repair_cart(owner.data, options))
