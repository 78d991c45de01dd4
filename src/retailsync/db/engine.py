"""SQLModel engine factory, process-wide engine and session dependency."""
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from retailsync.config import get_settings

_engine: Optional[Engine] = None


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """
    Build an engine and make sure every table exists.

    For SQLite the pysqlite driver's implicit transaction handling is turned
    off and BEGIN is emitted explicitly, otherwise SAVEPOINT/ROLLBACK TO
    (used for per-record isolation during persistence) does not nest inside
    the outer transaction.
    """
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(database_url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    # Import all models so metadata is populated before create_all
    from retailsync.models import entities, sync  # noqa: F401
    SQLModel.metadata.create_all(engine)
    return engine


def get_engine() -> Engine:
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(get_settings().database_url)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
