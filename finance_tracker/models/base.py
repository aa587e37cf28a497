"""
Database engine, session management, and base model.

Every model inherits from Base. Every request gets a session
from get_db().
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from finance_tracker.config import get_settings

settings = get_settings()


def enable_sqlite_savepoints(sqlite_engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT.

    The driver defers BEGIN on its own, which breaks nested
    transactions. Taking over BEGIN ourselves makes
    Session.begin_nested() behave the same as on PostgreSQL.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles cases where the database restarted or a
# connection went stale.
if settings.DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
    )

# --- Session Factory ---
# autocommit=False means callers control when changes are
# saved. A ledger mutation and its running-balance recompute
# are committed together or not at all.
# autoflush=False means SQL is only sent on explicit flush
# or commit.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, even if the request fails.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
