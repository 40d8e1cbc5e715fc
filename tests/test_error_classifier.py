import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from storefront.data.error_classifier import classify, friendly_message, returns_result
from storefront.domain.results import ErrorKind, Result


class MySQLError(Exception):
    """Shaped like a MySQL driver error: (errno, message) args."""


class PGError(Exception):
    def __init__(self, pgcode, message="pg failure"):
        super().__init__(message)
        self.pgcode = pgcode


def wrap(orig, cls=OperationalError, **kwargs):
    return cls("SELECT 1", {}, orig, **kwargs)


class TestVendorCodes:
    @pytest.mark.parametrize(
        "errno, kind",
        [
            (1062, ErrorKind.DUPLICATE_ENTRY),
            (1452, ErrorKind.FOREIGN_KEY_CONSTRAINT),
            (1451, ErrorKind.FOREIGN_KEY_CONSTRAINT),
            (1146, ErrorKind.TABLE_NOT_FOUND),
            (1054, ErrorKind.COLUMN_NOT_FOUND),
            (2006, ErrorKind.CONNECTION_LOST),
            (1205, ErrorKind.LOCK_TIMEOUT),
            (1213, ErrorKind.DEADLOCK),
            (1040, ErrorKind.TOO_MANY_CONNECTIONS),
            (1045, ErrorKind.ACCESS_DENIED),
        ],
    )
    def test_mysql(self, errno, kind):
        failure = classify(wrap(MySQLError(errno, "boom")), "op")
        assert failure.kind == kind
        assert failure.details["db_code"] == errno

    @pytest.mark.parametrize(
        "code, kind",
        [
            ("23505", ErrorKind.DUPLICATE_ENTRY),
            ("23503", ErrorKind.FOREIGN_KEY_CONSTRAINT),
            ("42P01", ErrorKind.TABLE_NOT_FOUND),
            ("55P03", ErrorKind.LOCK_TIMEOUT),
            ("40P01", ErrorKind.DEADLOCK),
            ("53300", ErrorKind.TOO_MANY_CONNECTIONS),
            ("28P01", ErrorKind.ACCESS_DENIED),
            ("08006", ErrorKind.CONNECTION_LOST),
        ],
    )
    def test_postgres(self, code, kind):
        assert classify(wrap(PGError(code)), "op").kind == kind

    @pytest.mark.parametrize(
        "message, kind",
        [
            ("UNIQUE constraint failed: orders.invoice_no", ErrorKind.DUPLICATE_ENTRY),
            ("FOREIGN KEY constraint failed", ErrorKind.FOREIGN_KEY_CONSTRAINT),
            ("no such table: cart_items", ErrorKind.TABLE_NOT_FOUND),
            ("database is locked", ErrorKind.LOCK_TIMEOUT),
        ],
    )
    def test_sqlite(self, message, kind):
        assert classify(wrap(Exception(message), IntegrityError), "op").kind == kind

    def test_invalidated_connection(self):
        failure = classify(wrap(Exception("gone"), connection_invalidated=True), "op")
        assert failure.kind == ErrorKind.CONNECTION_LOST
        assert failure.retryable


class TestFallbacks:
    def test_unknown_driver_error(self):
        failure = classify(wrap(Exception("weird"), DBAPIError), "op", product_id=3)

        assert failure.kind == ErrorKind.DATABASE_ERROR
        assert failure.details["product_id"] == 3
        assert not failure.retryable

    def test_plain_sqlalchemy_error(self):
        assert classify(SQLAlchemyError("bad state"), "op").kind == ErrorKind.DATABASE_ERROR

    def test_non_database_exception(self):
        failure = classify(ValueError("oops"), "op")

        assert failure.kind == ErrorKind.DATABASE_EXCEPTION
        assert failure.details["exception_type"] == "ValueError"

    @pytest.mark.parametrize("kind", [ErrorKind.LOCK_TIMEOUT, ErrorKind.DEADLOCK])
    def test_retryable_kinds(self, kind):
        assert Result.fail(kind, "busy").error.retryable


class FakeSession:
    def __init__(self):
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


class Service:
    def __init__(self):
        self.db = FakeSession()

    @returns_result("explode")
    def explode(self):
        raise wrap(MySQLError(1213, "Deadlock found"))

    @returns_result("fine")
    def fine(self):
        return Result.ok(1)


class TestReturnsResult:
    def test_exception_becomes_failure_and_rolls_back(self):
        svc = Service()

        result = svc.explode()

        assert not result.success
        assert result.kind == ErrorKind.DEADLOCK
        assert result.error.details["operation"] == "explode"
        assert svc.db.rollbacks == 1

    def test_success_passes_through(self):
        svc = Service()
        assert svc.fine().data == 1
        assert svc.db.rollbacks == 0


def test_friendly_messages():
    assert friendly_message(ErrorKind.NOT_FOUND, "order").startswith("Order not found")
    assert friendly_message(ErrorKind.NOT_FOUND).startswith("Cart item not found")
    assert "Server is busy" in friendly_message(ErrorKind.TOO_MANY_CONNECTIONS)
    assert friendly_message(ErrorKind.DATABASE_ERROR, "order").startswith("An order processing error")
