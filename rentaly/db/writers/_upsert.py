"""
Dialect-aware upsert helpers.

PostgreSQL and SQLite both support ``INSERT ... ON CONFLICT``; the statement is
built with the insert construct of the connection's dialect so writers do not
branch on the backend themselves.
"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def dialect_insert(conn: Connection, table: Any) -> Any:
    """
    Return an ``insert()`` construct supporting ``on_conflict_*`` for this connection.

    Args:
        conn: Active database connection
        table: ORM class or Table

    Returns:
        Insert: PostgreSQL or SQLite dialect insert
    """
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def upsert_with_distinct_check(
    conn: Connection,
    table: type,
    rows: list[dict[str, Any]],
    conflict_columns: list[str],
    update_columns: list[str],
) -> None:
    """
    Perform upsert, touching a row only when one of update_columns changed.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., Listing)
        rows: List of row dicts to upsert
        conflict_columns: Columns of the unique key for ON CONFLICT
        update_columns: Columns copied from the incoming row on conflict;
            ``updated_at`` is copied as well whenever any of them differs

    Example:
        >>> with engine.begin() as conn:
        ...     upsert_with_distinct_check(
        ...         conn=conn,
        ...         table=Listing,
        ...         rows=[{"id": "p1", "listing_type": "property", ...}],
        ...         conflict_columns=["id", "listing_type"],
        ...         update_columns=["owner_id", "price_per_day"],
        ...     )
    """
    if not rows:
        return

    stmt = dialect_insert(conn, table).values(rows)

    set_dict = {col: getattr(stmt.excluded, col) for col in update_columns}
    set_dict["updated_at"] = stmt.excluded.updated_at

    # NULL-safe "did anything change" check
    distinct_check = None
    for col in update_columns:
        clause = getattr(table, col).is_distinct_from(getattr(stmt.excluded, col))
        distinct_check = clause if distinct_check is None else distinct_check | clause

    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_=set_dict,
        where=distinct_check,
    )

    conn.execute(stmt)
