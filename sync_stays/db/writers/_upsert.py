"""
Generic upsert helper with IS DISTINCT FROM optimization.

Postgres in production, SQLite for local runs and tests: both dialects expose
the same ON CONFLICT DO UPDATE construct, so the helper picks the insert()
matching the connection's dialect.
"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def _dialect_insert(conn: Connection, table: Any) -> Any:
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def upsert_with_distinct_check(
    conn: Connection,
    table: type,
    rows: list[dict[str, Any]],
    conflict_columns: list[str],
    distinct_column: str,
    update_columns: list[str] | None = None,
) -> None:
    """
    Perform upsert with IS DISTINCT FROM optimization.

    Only updates rows where the distinct_column value has actually changed, so
    re-submitting identical content leaves updated_at alone.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., MailMessage)
        rows: List of row dicts to upsert
        conflict_columns: Columns of the unique constraint used for ON CONFLICT
        distinct_column: Column to check for changes (e.g. "content_hash")
        update_columns: Columns to update on conflict (default: [distinct_column, "updated_at"])

    Example:
        >>> with engine.begin() as conn:
        ...     upsert_with_distinct_check(
        ...         conn=conn,
        ...         table=MailMessage,
        ...         rows=[{"connection_id": "c1", "message_id": "m1", ...}],
        ...         conflict_columns=["connection_id", "message_id"],
        ...         distinct_column="content_hash",
        ...     )
    """
    if not rows:
        return

    if update_columns is None:
        update_columns = [distinct_column, "updated_at"]

    stmt = _dialect_insert(conn, table).values(rows)

    set_dict = {col: getattr(stmt.excluded, col) for col in update_columns}

    distinct_check = getattr(table, distinct_column).is_distinct_from(
        getattr(stmt.excluded, distinct_column)
    )

    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_=set_dict,
        where=distinct_check,
    )

    conn.execute(stmt)
