# storefront/domain/validation.py
"""
Input validation for cart and checkout operations.

Every validator is a pure function returning a Result: ``Result.ok(value)``
with the sanitized value, or a ``validation_error`` whose details name the
field, the issue and the offending value. Nothing here touches storage.
"""
import ipaddress
import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from storefront.domain.owner import Customer, Guest
from storefront.domain.results import ErrorKind, Result
from storefront.utils.settings import MAX_CART_QUANTITY

MAX_ID = 2147483647
MAX_ORDER_AMOUNT = Decimal("999999.99")
FALLBACK_IP = "127.0.0.1"
DEFAULT_CURRENCY = "USD"

SUPPORTED_CURRENCIES = (
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "SEK", "NZD",
    "MXN", "SGD", "HKD", "NOK", "TRY", "RUB", "INR", "BRL", "ZAR", "KRW",
)

PAYMENT_METHODS = (
    "simulated_success",
    "simulated_failure",
    "simulated_timeout",
    "credit_card",
    "debit_card",
    "paypal",
    "bank_transfer",
)

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")

_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def _invalid(field: str, message: str, issue: str, value: Any, **extra: Any) -> Result:
    return Result.fail(
        ErrorKind.VALIDATION_ERROR,
        message,
        field=field,
        issue=issue,
        value=value,
        **extra,
    )


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Decimal(str(value))
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, str) and _NUMERIC.match(value):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _validate_id(value: Any, field: str, label: str) -> Result:
    if _is_missing(value):
        return _invalid(field, f"{label} is required", "missing_or_empty", value)

    number = _as_number(value)
    if number is None:
        return _invalid(field, f"{label} must be a valid number", "not_numeric", value)

    # compare as Decimal before int(), a huge exponent makes int() unbounded
    if number < 1:
        return _invalid(field, f"{label} must be a positive number", "not_positive", value)
    if number >= MAX_ID + 1:
        return _invalid(field, f"{label} is too large", "too_large", value, max_allowed=MAX_ID)

    return Result.ok(int(number))


def validate_product_id(product_id: Any) -> Result:
    return _validate_id(product_id, "product_id", "Product ID")


def validate_order_id(order_id: Any) -> Result:
    return _validate_id(order_id, "order_id", "Order ID")


def validate_customer_id(customer_id: Any) -> Result:
    """Customer id is optional, None means a guest."""
    if _is_missing(customer_id):
        return Result.ok(None)
    return _validate_id(customer_id, "customer_id", "Customer ID")


def validate_quantity(
    quantity: Any,
    allow_zero: bool = False,
    max_quantity: int = MAX_CART_QUANTITY,
) -> Result:
    if _is_missing(quantity):
        return _invalid("quantity", "Quantity is required", "missing_or_empty", quantity)

    number = _as_number(quantity)
    if number is None:
        return _invalid("quantity", "Quantity must be a valid number", "not_numeric", quantity)

    min_value = 0 if allow_zero else 1
    # truncation toward zero happens only once the value is known to be small
    if number <= min_value - 1 or (number < min_value and int(number) < min_value):
        message = "Quantity must be zero or greater" if allow_zero else "Quantity must be at least 1"
        return _invalid("quantity", message, "below_minimum", quantity, min_allowed=min_value)
    if number >= max_quantity + 1:
        return _invalid(
            "quantity",
            f"Quantity must be at most {max_quantity}",
            "above_maximum",
            quantity,
            max_allowed=max_quantity,
        )

    return Result.ok(int(number))


def validate_ip_address(ip_address: Any) -> Result:
    if _is_missing(ip_address):
        return Result.ok(FALLBACK_IP)

    trimmed = str(ip_address).strip()
    if trimmed == "":
        return Result.ok(FALLBACK_IP)

    try:
        ipaddress.ip_address(trimmed)
    except ValueError:
        return _invalid("ip_address", "Invalid IP address format", "invalid_format", trimmed)

    return Result.ok(trimmed)


def validate_user_identification(customer_id: Any, ip_address: Any) -> Result:
    customer = validate_customer_id(customer_id)
    if not customer.success:
        return customer

    ip = validate_ip_address(ip_address)
    if not ip.success:
        return ip

    if customer.data is None and ip.data is None:
        return Result.fail(
            ErrorKind.VALIDATION_ERROR,
            "Either customer ID or IP address is required for user identification",
            customer_id=None,
            ip_address=None,
            issue="no_user_identification",
        )

    return Result.ok({"customer_id": customer.data, "ip_address": ip.data})


def resolve_owner(customer_id: Any, ip_address: Any) -> Result:
    """Validated identity tokens turned into the Owner of a cart partition."""
    identification = validate_user_identification(customer_id, ip_address)
    if not identification.success:
        return identification

    values = identification.data
    if values["customer_id"] is not None:
        return Result.ok(Customer(values["customer_id"]))
    return Result.ok(Guest(values["ip_address"]))


def validate_owner(owner: Any) -> Result:
    """Re-checks an Owner built by a caller, e.g. Guest('') falls back to 127.0.0.1."""
    if isinstance(owner, Customer):
        customer = validate_customer_id(owner.customer_id)
        if not customer.success:
            return customer
        if customer.data is None:
            return _invalid("customer_id", "Customer ID is required", "missing_or_empty", owner.customer_id)
        return Result.ok(Customer(customer.data))

    if isinstance(owner, Guest):
        ip = validate_ip_address(owner.ip_address)
        if not ip.success:
            return ip
        return Result.ok(Guest(ip.data))

    return Result.fail(
        ErrorKind.VALIDATION_ERROR,
        "Either customer ID or IP address is required for user identification",
        customer_id=None,
        ip_address=None,
        issue="no_user_identification",
    )


def validate_order_amount(amount: Any) -> Result:
    if _is_missing(amount):
        return _invalid("amount", "Order amount is required", "missing_or_empty", amount)

    number = _as_number(amount)
    if number is None:
        return _invalid("amount", "Order amount must be a valid number", "not_numeric", amount)

    if number <= 0:
        return _invalid("amount", "Order amount must be greater than zero", "not_positive", number)
    if number > MAX_ORDER_AMOUNT:
        return _invalid(
            "amount",
            f"Order amount exceeds maximum allowed value of {MAX_ORDER_AMOUNT}",
            "above_maximum",
            number,
            max_allowed=MAX_ORDER_AMOUNT,
        )

    rounded = number.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if rounded <= 0:
        return _invalid("amount", "Order amount must be greater than zero", "not_positive", number)

    return Result.ok(rounded)


def validate_currency(currency: Any) -> Result:
    if _is_missing(currency):
        return Result.ok(DEFAULT_CURRENCY)

    code = str(currency).strip().upper()

    if len(code) != 3:
        return _invalid(
            "currency",
            "Currency code must be exactly 3 characters",
            "invalid_length",
            code,
            expected_length=3,
        )
    if not (code.isascii() and code.isalpha()):
        return _invalid(
            "currency",
            "Currency code must contain only alphabetic characters",
            "non_alphabetic",
            code,
        )
    if code not in SUPPORTED_CURRENCIES:
        return _invalid(
            "currency",
            "Unsupported currency code",
            "unsupported_currency",
            code,
            supported_currencies=list(SUPPORTED_CURRENCIES),
        )

    return Result.ok(code)


def validate_payment_method(payment_method: Any) -> Result:
    if _is_missing(payment_method):
        return _invalid("payment_method", "Payment method is required", "missing_or_empty", payment_method)

    method = str(payment_method).strip().lower()
    if method not in PAYMENT_METHODS:
        return _invalid(
            "payment_method",
            "Invalid payment method",
            "invalid_method",
            method,
            valid_methods=list(PAYMENT_METHODS),
        )

    return Result.ok(method)


def validate_order_status(status: Any) -> Result:
    if _is_missing(status) or not isinstance(status, str):
        return _invalid("status", "Valid order status is required", "missing_or_empty", status)
    if status not in ORDER_STATUSES:
        return _invalid(
            "status",
            "Invalid order status",
            "invalid_status",
            status,
            valid_statuses=list(ORDER_STATUSES),
        )
    return Result.ok(status)


def validate_date(value: Any, field: str) -> Result:
    if isinstance(value, datetime):
        return Result.ok(value.date())
    if isinstance(value, date):
        return Result.ok(value)
    try:
        return Result.ok(datetime.strptime(str(value), "%Y-%m-%d").date())
    except ValueError:
        return _invalid(field, "Invalid date format. Use YYYY-MM-DD", "invalid_format", value)


def _aggregate(message: str, failures: list) -> Result:
    return Result.fail(
        ErrorKind.VALIDATION_ERROR,
        message,
        validation_errors=[f.error.model_dump() for f in failures],
        failed_fields=len(failures),
    )


def validate_add_to_cart_input(payload: Mapping[str, Any]) -> Result:
    """Runs every field check and reports all failures at once."""
    failures = []
    sanitized = {}

    product = validate_product_id(payload.get("product_id"))
    if product.success:
        sanitized["product_id"] = product.data
    else:
        failures.append(product)

    raw_quantity = payload.get("quantity")
    quantity = validate_quantity(1 if raw_quantity is None else raw_quantity)
    if quantity.success:
        sanitized["quantity"] = quantity.data
    else:
        failures.append(quantity)

    if "owner" in payload:
        owner = validate_owner(payload["owner"])
    else:
        owner = resolve_owner(payload.get("customer_id"), payload.get("ip_address"))
    if owner.success:
        sanitized["owner"] = owner.data
    else:
        failures.append(owner)

    if failures:
        return _aggregate("Input validation failed", failures)
    return Result.ok(sanitized)


def validate_checkout_input(payload: Mapping[str, Any]) -> Result:
    failures = []
    sanitized = {}

    customer = validate_customer_id(payload.get("customer_id"))
    if customer.success and customer.data is not None:
        sanitized["customer_id"] = customer.data
    else:
        failures.append(
            _invalid(
                "customer_id",
                "Customer ID is required for checkout",
                "required_for_checkout",
                payload.get("customer_id"),
            )
        )

    amount = validate_order_amount(payload.get("total_amount"))
    if amount.success:
        sanitized["total_amount"] = amount.data
    else:
        failures.append(amount)

    currency = validate_currency(payload.get("currency"))
    if currency.success:
        sanitized["currency"] = currency.data
    else:
        failures.append(currency)

    method = validate_payment_method(payload.get("payment_method"))
    if method.success:
        sanitized["payment_method"] = method.data
    else:
        failures.append(method)

    if failures:
        return _aggregate("Checkout input validation failed", failures)
    return Result.ok(sanitized)
