from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_stays.models.sync_runs import SyncRun


def last_successful_run_at(conn: Connection, run_type: str, scope_id: str) -> Optional[datetime]:
    """
    Finish time of the most recent successful run for a scope.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        run_type (str): calendar, email, enrichment, ...
        scope_id (str): Property, feed or connection ID.

    Returns:
        Optional[datetime]: finished_at of the newest success, or None.
    """
    stmt = (
        select(SyncRun.finished_at)
        .where(
            SyncRun.run_type == run_type,
            SyncRun.scope_id == scope_id,
            SyncRun.status == "success",
        )
        .order_by(SyncRun.finished_at.desc())
        .limit(1)
    )
    return conn.execute(stmt).scalar_one_or_none()


def list_recent_runs(conn: Connection, scope_id: str, limit: int = 20) -> list[dict[str, Any]]:
    """Newest audit rows for a scope, for operator tooling."""
    stmt = (
        select(SyncRun.__table__)
        .where(SyncRun.scope_id == scope_id)
        .order_by(SyncRun.finished_at.desc())
        .limit(limit)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]
