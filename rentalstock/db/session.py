"""SQLAlchemy engine, session factory and the declarative base."""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.config import settings


def enable_sqlite_savepoints(target: Engine) -> Engine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT behaves on pysqlite.

    The stdlib driver opens transactions lazily and would otherwise let the
    outermost SAVEPOINT start (and RELEASE commit) the whole transaction.
    Must be applied before the engine hands out its first connection.
    """

    @event.listens_for(target, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return target


# SQLite connections are shared across FastAPI worker threads and the
# scheduler thread. Other database engines ignore this argument.
IS_SQLITE = settings.DB_URL.startswith("sqlite")
CONNECT_ARGS = {"check_same_thread": False} if IS_SQLITE else {}

engine = create_engine(settings.DB_URL, connect_args=CONNECT_ARGS)
if IS_SQLITE:
    enable_sqlite_savepoints(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
