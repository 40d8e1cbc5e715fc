# storefront/domain/results.py
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    DUPLICATE_ENTRY = "duplicate_entry"
    FOREIGN_KEY_CONSTRAINT = "foreign_key_constraint"
    TABLE_NOT_FOUND = "table_not_found"
    COLUMN_NOT_FOUND = "column_not_found"
    LOCK_TIMEOUT = "lock_timeout"
    DEADLOCK = "deadlock"
    CONNECTION_LOST = "connection_lost"
    TOO_MANY_CONNECTIONS = "too_many_connections"
    ACCESS_DENIED = "access_denied"
    DATABASE_ERROR = "database_error"
    DATABASE_EXCEPTION = "database_exception"
    ORPHANED_PRODUCT = "orphaned_product"
    TRANSFER_FAILED = "transfer_failed"
    GENERATION_FAILED = "generation_failed"
    PAYMENT_FAILED = "payment_failed"


# the caller may retry these, the store did not corrupt anything
RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.LOCK_TIMEOUT,
        ErrorKind.DEADLOCK,
        ErrorKind.CONNECTION_LOST,
        ErrorKind.TOO_MANY_CONNECTIONS,
    }
)


class Failure(BaseModel):
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    retryable: bool = False


class Result(BaseModel):
    """Outcome of every public operation of the core."""

    success: bool
    data: Any = None
    error: Optional[Failure] = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **details: Any) -> "Result":
        return cls(
            success=False,
            error=Failure(
                kind=kind,
                message=message,
                details=details,
                retryable=kind in RETRYABLE_KINDS,
            ),
        )

    @classmethod
    def from_failure(cls, failure: Failure) -> "Result":
        return cls(success=False, error=failure)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""
