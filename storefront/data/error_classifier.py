# storefront/data/error_classifier.py
"""
Storage failure classification.

This is the only module that looks at vendor error codes. MySQL errnos,
PostgreSQL SQLSTATEs and SQLite messages all map onto the same ErrorKind
set, so services and callers never see backend specifics.
"""
import functools
from typing import Any, Callable, Optional

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from storefront.domain.results import ErrorKind, Failure, RETRYABLE_KINDS, Result
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_MYSQL_ERRNOS = {
    1062: ErrorKind.DUPLICATE_ENTRY,
    1452: ErrorKind.FOREIGN_KEY_CONSTRAINT,
    1451: ErrorKind.FOREIGN_KEY_CONSTRAINT,
    1146: ErrorKind.TABLE_NOT_FOUND,
    1054: ErrorKind.COLUMN_NOT_FOUND,
    2006: ErrorKind.CONNECTION_LOST,
    2013: ErrorKind.CONNECTION_LOST,
    1205: ErrorKind.LOCK_TIMEOUT,
    1213: ErrorKind.DEADLOCK,
    1040: ErrorKind.TOO_MANY_CONNECTIONS,
    1044: ErrorKind.ACCESS_DENIED,
    1045: ErrorKind.ACCESS_DENIED,
}

_PG_SQLSTATES = {
    "23505": ErrorKind.DUPLICATE_ENTRY,
    "23503": ErrorKind.FOREIGN_KEY_CONSTRAINT,
    "42P01": ErrorKind.TABLE_NOT_FOUND,
    "42703": ErrorKind.COLUMN_NOT_FOUND,
    "55P03": ErrorKind.LOCK_TIMEOUT,
    "40P01": ErrorKind.DEADLOCK,
    "53300": ErrorKind.TOO_MANY_CONNECTIONS,
    "28000": ErrorKind.ACCESS_DENIED,
    "28P01": ErrorKind.ACCESS_DENIED,
    "42501": ErrorKind.ACCESS_DENIED,
}

_SQLITE_MESSAGES = (
    ("unique constraint failed", ErrorKind.DUPLICATE_ENTRY),
    ("foreign key constraint failed", ErrorKind.FOREIGN_KEY_CONSTRAINT),
    ("no such table", ErrorKind.TABLE_NOT_FOUND),
    ("no such column", ErrorKind.COLUMN_NOT_FOUND),
    ("has no column named", ErrorKind.COLUMN_NOT_FOUND),
    ("database is locked", ErrorKind.LOCK_TIMEOUT),
    ("database table is locked", ErrorKind.LOCK_TIMEOUT),
)

MESSAGES = {
    ErrorKind.DUPLICATE_ENTRY: "Duplicate entry detected - this violates a unique constraint",
    ErrorKind.FOREIGN_KEY_CONSTRAINT: "Foreign key constraint violation - referenced record does not exist or is still referenced",
    ErrorKind.TABLE_NOT_FOUND: "Database table not found - possible schema issue",
    ErrorKind.COLUMN_NOT_FOUND: "Database column not found - possible schema mismatch",
    ErrorKind.CONNECTION_LOST: "Database connection lost - server may be unavailable",
    ErrorKind.LOCK_TIMEOUT: "Database operation timed out due to lock contention",
    ErrorKind.DEADLOCK: "Database deadlock detected - operation was rolled back",
    ErrorKind.TOO_MANY_CONNECTIONS: "Database server has too many connections - please try again later",
    ErrorKind.ACCESS_DENIED: "Database access denied - authentication or permission issue",
}


def _vendor_code(orig: Any) -> Optional[Any]:
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code
    args = getattr(orig, "args", None)
    if args and isinstance(args[0], int):
        return args[0]
    return None


def _kind_for(exc: DBAPIError) -> ErrorKind:
    if exc.connection_invalidated:
        return ErrorKind.CONNECTION_LOST

    orig = exc.orig
    code = _vendor_code(orig)

    if isinstance(code, int) and code in _MYSQL_ERRNOS:
        return _MYSQL_ERRNOS[code]
    if isinstance(code, str):
        if code in _PG_SQLSTATES:
            return _PG_SQLSTATES[code]
        if code.startswith("08"):
            return ErrorKind.CONNECTION_LOST

    text = str(orig).lower()
    for fragment, kind in _SQLITE_MESSAGES:
        if fragment in text:
            return kind

    return ErrorKind.DATABASE_ERROR


def classify(exc: BaseException, operation: str, **context: Any) -> Failure:
    """Maps an exception raised while talking to the store onto a Failure."""
    if isinstance(exc, DBAPIError):
        kind = _kind_for(exc)
        orig = exc.orig
        message = MESSAGES.get(kind, f"Database operation failed with error: {orig}")
        details = {
            "operation": operation,
            "db_error": str(orig),
            "db_code": _vendor_code(orig),
            **context,
        }
    elif isinstance(exc, SQLAlchemyError):
        kind = ErrorKind.DATABASE_ERROR
        message = f"Database operation failed with error: {exc}"
        details = {"operation": operation, "db_error": str(exc), **context}
    else:
        kind = ErrorKind.DATABASE_EXCEPTION
        message = f"{operation} failed with exception"
        details = {
            "operation": operation,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            **context,
        }

    retryable = kind in RETRYABLE_KINDS
    if retryable or kind in (ErrorKind.DUPLICATE_ENTRY, ErrorKind.FOREIGN_KEY_CONSTRAINT):
        logger.warning(f"[{kind.value}] {operation}: {details.get('db_error', exc)}")
    else:
        logger.error(f"[{kind.value}] {operation}: {exc}", exc_info=kind == ErrorKind.DATABASE_EXCEPTION)

    return Failure(kind=kind, message=message, details=details, retryable=retryable)


def returns_result(operation: str) -> Callable:
    """
    Keeps exceptions from leaving a service method.

    The wrapped method's session is rolled back and the exception becomes a
    failed Result carrying the classified kind.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs) -> Result:
            try:
                return func(self, *args, **kwargs)
            except Exception as exc:
                db = getattr(self, "db", None)
                if db is not None:
                    try:
                        db.rollback()
                    except SQLAlchemyError as rollback_exc:
                        logger.warning(f"Rollback after failed {operation} also failed: {rollback_exc}")
                return Result.from_failure(classify(exc, operation))

        return wrapper

    return decorator


_CART_MESSAGES = {
    ErrorKind.DUPLICATE_ENTRY: "This item is already in your cart.",
    ErrorKind.FOREIGN_KEY_CONSTRAINT: "The selected product may no longer be available. Please refresh the page.",
    ErrorKind.LOCK_TIMEOUT: "Cart is busy. Please try again in a moment.",
    ErrorKind.DEADLOCK: "Cart is busy. Please try again in a moment.",
    ErrorKind.NOT_FOUND: "Cart item not found. It may have been removed already.",
    ErrorKind.VALIDATION_ERROR: "Invalid cart data provided.",
    ErrorKind.ORPHANED_PRODUCT: "This product is no longer available and was removed from your cart.",
    ErrorKind.TRANSFER_FAILED: "We could not move your guest cart to your account. Please try again.",
}

_ORDER_MESSAGES = {
    ErrorKind.DUPLICATE_ENTRY: "Duplicate order detected. Please refresh the page.",
    ErrorKind.FOREIGN_KEY_CONSTRAINT: "Order data integrity error. Please contact administrator.",
    ErrorKind.LOCK_TIMEOUT: "Order system is busy. Please try again in a moment.",
    ErrorKind.DEADLOCK: "Order system is busy. Please try again in a moment.",
    ErrorKind.NOT_FOUND: "Order not found. It may have been removed or does not exist.",
    ErrorKind.VALIDATION_ERROR: "Invalid order data provided.",
    ErrorKind.GENERATION_FAILED: "Failed to generate unique order reference. Please try again.",
    ErrorKind.PAYMENT_FAILED: "Payment processing failed. Please try again.",
}

_SHARED_MESSAGES = {
    ErrorKind.TABLE_NOT_FOUND: "Database schema error. Please contact administrator.",
    ErrorKind.COLUMN_NOT_FOUND: "Database schema error. Please contact administrator.",
    ErrorKind.CONNECTION_LOST: "Database connection lost. Please refresh the page and try again.",
    ErrorKind.TOO_MANY_CONNECTIONS: "Server is busy. Please try again later.",
    ErrorKind.ACCESS_DENIED: "Database access error. Please contact administrator.",
}


def friendly_message(kind: ErrorKind, context: str = "cart") -> str:
    """Message suitable for showing to a shopper."""
    table = _ORDER_MESSAGES if context == "order" else _CART_MESSAGES
    if kind in table:
        return table[kind]
    if kind in _SHARED_MESSAGES:
        return _SHARED_MESSAGES[kind]
    if context == "order":
        return "An order processing error occurred. Please try again or contact support if the problem persists."
    return "A cart error occurred. Please try again or contact support if the problem persists."
