# storefront/data/database.py
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.utils.settings import DATABASE_URL

Base = declarative_base()


def make_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    """
    Builds an engine for the given url.

    SQLite gets foreign keys enforced and the pysqlite transaction fix, so
    that BEGIN/SAVEPOINT behave like on a real server (needed by transfer
    and the duplicate merge, both use begin_nested per line).
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)

    engine = create_engine(url, future=True, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    # models must be imported before create_all so Base.metadata knows them
    import storefront.data.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


class TransactionScope:
    """Handle yielded by transaction(); lets the caller veto the commit."""

    def __init__(self, db: Session):
        self.db = db
        self.rollback_only = False

    def mark_rollback(self) -> None:
        self.rollback_only = True


@contextmanager
def transaction(db: Session) -> Iterator[TransactionScope]:
    """
    Scoped unit of work.

    Commits on a clean exit, rolls back when the body raises or called
    mark_rollback(). The release step runs on every path.
    """
    scope = TransactionScope(db)
    try:
        yield scope
    except BaseException:
        db.rollback()
        raise
    else:
        if scope.rollback_only:
            db.rollback()
            return
        try:
            db.commit()
        except BaseException:
            db.rollback()
            raise
