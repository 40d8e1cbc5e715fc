# storefront/services/customer_service.py
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.error_classifier import returns_result
from storefront.data.models.customer import CustomerModel
from storefront.domain.results import ErrorKind, Result
from storefront.domain.schemas import CustomerCreate, CustomerRead
from storefront.repos.customer_repo import CustomerRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CustomerService:
    """Minimal identity store, customers are referenced by carts and orders."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepo(db)

    @returns_result("create_customer")
    def create_customer(self, payload: CustomerCreate) -> Result:
        existing = self.repo.get_customer(payload.id)
        if existing:
            return Result.ok(CustomerRead.model_validate(existing))

        if payload.email and self.repo.get_by_email(payload.email):
            return Result.fail(
                ErrorKind.DUPLICATE_ENTRY,
                "Email address is already registered",
                field="email",
                value=payload.email,
            )

        with transaction(self.db):
            created = self.repo.create_customer(
                CustomerModel(id=payload.id, name=payload.name, email=payload.email)
            )

        logger.info(f"Registered customer {created.id}")
        return Result.ok(CustomerRead.model_validate(created))

    @returns_result("get_customer")
    def get_customer(self, customer_id: int) -> Result:
        customer = self.repo.get_customer(customer_id)
        if not customer:
            return Result.fail(ErrorKind.NOT_FOUND, "Customer not found", customer_id=customer_id)
        return Result.ok(CustomerRead.model_validate(customer))
