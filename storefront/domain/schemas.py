# storefront/domain/schemas.py
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------- cart ----------

class CartLine(BaseModel):
    """A stored cart line, as returned by add/update."""

    product_id: int
    quantity: int
    customer_id: Optional[int] = None
    ip_address: Optional[str] = None
    action: str


class RemovedLine(BaseModel):
    product_id: int
    customer_id: Optional[int] = None
    ip_address: Optional[str] = None
    affected_rows: int
    action: str = "removed"


class LineLookup(BaseModel):
    product_id: int
    found: bool
    quantity: Optional[int] = None


class CartItemView(BaseModel):
    """Cart line joined with the current product row."""

    product_id: int
    quantity: int
    title: str
    price: Decimal
    image: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    subtotal: Decimal


class CartSnapshot(BaseModel):
    items: List[CartItemView]
    count: int
    total_items: int
    total_amount: Decimal
    customer_id: Optional[int] = None
    ip_address: Optional[str] = None


class CartCount(BaseModel):
    count: int
    total_items: int


class EmptiedCart(BaseModel):
    customer_id: Optional[int] = None
    ip_address: Optional[str] = None
    removed_items: int
    action: str = "cart_emptied"


class TransferReport(BaseModel):
    customer_id: int
    ip_address: str
    transferred_items: int
    merged_items: int
    total_processed: int
    removed_leftovers: int
    errors: List[str] = []
    action: str = "cart_transferred"


class GuestCartStatistics(BaseModel):
    unique_guest_ips: int
    total_guest_items: int
    total_guest_quantity: int
    avg_items_per_guest: Decimal


class GuestCartSession(BaseModel):
    ip_address: str
    has_cart_items: bool
    item_count: int
    total_quantity: int
    session_valid: bool = True


class GuestCartCleanup(BaseModel):
    expiry_hours: int
    removed_items: int
    action: str = "guest_cart_cleanup"


# ---------- catalog ----------

class ProductSnapshot(BaseModel):
    id: int
    title: str
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class ProductExistence(BaseModel):
    product_id: int
    exists: bool
    product: Optional[ProductSnapshot] = None


# ---------- orders ----------

class OrderLineOut(BaseModel):
    product_id: int
    quantity: int
    title: Optional[str] = None
    price: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None


class PaymentOut(BaseModel):
    payment_id: int
    amount: Decimal
    currency: str
    payment_method: str
    payment_date: date


class OrderReceipt(BaseModel):
    order_id: int
    customer_id: int
    invoice_no: int
    status: str
    order_date: date
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payment: Optional[PaymentOut] = None
    lines: List[OrderLineOut]
    items_count: int
    total_items: int


class CheckoutReceipt(OrderReceipt):
    payment_method: str
    cart_emptied: bool
    message: str


class OrderSummary(BaseModel):
    order_id: int
    customer_id: int
    invoice_no: int
    status: str
    order_date: date
    payment_id: Optional[int] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class CustomerOrders(BaseModel):
    customer_id: int
    orders: List[OrderSummary]
    count: int
    limit: int
    offset: int


class StatusChange(BaseModel):
    order_id: int
    new_status: str
    affected_rows: int
    action: str = "order_status_updated"


class OrderStatistics(BaseModel):
    start_date: date
    end_date: date
    total_orders: int
    unique_customers: int
    total_revenue: Decimal
    avg_order_value: Decimal
    pending_orders: int
    confirmed_orders: int
    cancelled_orders: int


# ---------- integrity ----------

class CartRow(BaseModel):
    product_id: int
    customer_id: Optional[int] = None
    ip_address: str
    quantity: int


class DuplicateGroup(BaseModel):
    product_id: int
    customer_id: Optional[int] = None
    ip_address: str
    entry_count: int
    total_quantity: int


class IntegrityIssue(BaseModel):
    issue_type: str
    severity: str
    description: str
    affected_count: int
    affected_items: List[Dict[str, Any]]


class IntegrityReport(BaseModel):
    integrity_status: str
    has_issues: bool
    has_critical_issues: bool
    total_issues: int
    issues: List[IntegrityIssue]
    customer_id: Optional[int] = None
    ip_address: Optional[str] = None
    checked_at: str


class RepairOptions(BaseModel):
    remove_orphaned: bool = True
    fix_quantities: bool = True
    merge_duplicates: bool = True


class RepairAction(BaseModel):
    fix_type: str
    status: str
    items_affected: int = 0
    message: str


class RepairReport(BaseModel):
    fixes_applied: List[RepairAction]
    total_fixes: int
    errors: List[RepairAction]
    total_errors: int
    customer_id: Optional[int] = None
    ip_address: Optional[str] = None
    fixed_at: str


# ---------- http input ----------

class ItemIn(BaseModel):
    """Add-to-cart body. Values are validated by the core, not here."""

    product_id: Any = None
    quantity: Any = 1


class QuantityIn(BaseModel):
    quantity: Any = None


class TransferIn(BaseModel):
    ip_address: Any = None
    customer_id: Any = None


class CheckoutIn(BaseModel):
    customer_id: Any = None
    total_amount: Any = None
    currency: Any = None
    payment_method: Any = None


class StatusIn(BaseModel):
    status: Any = None


class CustomerCreate(BaseModel):
    id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)


class CustomerRead(BaseModel):
    id: int
    name: str
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
