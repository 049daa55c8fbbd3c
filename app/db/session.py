import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from app.core.config import settings

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """
    Build an engine with the locking behaviour the approval workflow relies on.

    PostgreSQL gets row locks from SELECT ... FOR UPDATE and a statement
    timeout. SQLite has no row locks, so every transaction starts with
    BEGIN IMMEDIATE and holds the database write lock for its whole span.
    Foreign keys are switched on so ON DELETE SET NULL applies.
    """
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", settings.sqlite_busy_timeout_seconds)
        engine = create_engine(database_url, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _sqlite_on_connect(dbapi_connection, connection_record):
            # Hand transaction control to SQLAlchemy so BEGIN below is ours
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("options", f"-c statement_timeout={settings.statement_timeout_ms}")
    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        **kwargs
    )


engine = create_db_engine(settings.database_url)


def get_session():
    """Dependency to get database session."""
    with Session(engine) as session:
        yield session


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
