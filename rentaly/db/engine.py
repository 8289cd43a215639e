"""
SQLAlchemy engine singleton with production-ready connection pooling.

PostgreSQL is the production store. SQLite is accepted for local runs and the
test-suite; for it every transaction is opened with BEGIN IMMEDIATE so writers
are serialised the same way the PostgreSQL advisory locks serialise them, and
the "rentals" schema is translated away because SQLite has no schemas.
"""

from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from rentaly.config import DATABASE_URL, SCHEMA


def _enable_sqlite_write_locking(sqlite_engine: Engine) -> None:
    """Hand transaction control to SQLAlchemy and take the write lock on BEGIN."""

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: str, **kwargs: Any) -> Engine:
    """
    Build an engine for the given database URL.

    Args:
        url: SQLAlchemy database URL (postgresql+psycopg2://... or sqlite:///...)
        **kwargs: Extra create_engine arguments (override the defaults below)

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    if url.startswith("sqlite"):
        options: dict[str, Any] = {
            "poolclass": NullPool,
            "connect_args": {"check_same_thread": False, "timeout": 30},
            "execution_options": {"schema_translate_map": {SCHEMA: None}},
        }
        options.update(kwargs)
        sqlite_engine = create_engine(url, future=True, **options)
        _enable_sqlite_write_locking(sqlite_engine)
        return sqlite_engine

    options = {
        "pool_size": 10,  # Number of connections to maintain in the pool
        "max_overflow": 20,  # Additional connections when pool is exhausted
        "pool_pre_ping": True,  # Verify connections before using (detect stale connections)
        "pool_recycle": 3600,  # Recycle connections after 1 hour (prevents stale connections)
        "echo": False,
    }
    options.update(kwargs)
    return create_engine(url, future=True, **options)


if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")

engine: Engine = create_db_engine(DATABASE_URL)


def check_engine_health(db_engine: Engine | None = None) -> bool:
    """
    Check if database engine is healthy and connections are working.

    This function is used by the /ready endpoint to verify database
    connectivity before allowing traffic to the service.

    Args:
        db_engine: Engine to probe (defaults to the module singleton)

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with (db_engine or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
