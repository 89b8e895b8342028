from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import insert
from sqlalchemy.engine import Connection

from sync_stays.models.base import new_id
from sync_stays.models.sync_runs import SyncRun
from sync_stays.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def record_run(
    conn: Connection,
    *,
    run_type: str,
    scope_type: str,
    scope_id: str,
    status: str,
    started_at: datetime,
    trigger: str = "manual",
    events_found: int = 0,
    processed: int = 0,
    matched: int = 0,
    errors: int = 0,
    detail: Optional[dict[str, Any]] = None,
) -> str:
    """
    Append one immutable audit row.

    Args:
        conn: Active database connection (within transaction)
        run_type: calendar, email, enrichment, reset or feed_disable
        scope_type: property, feed or connection
        scope_id: ID of the scoped entity
        status: success, partial or failure
        started_at: When the run started
        trigger: manual or scheduled
        events_found: Calendar events / messages seen
        processed: Rows written or examined
        matched: Enrichment merges
        errors: Per-item failures
        detail: JSON detail (failures, merges, counters)

    Returns:
        str: ID of the new row
    """
    run_id = new_id()
    conn.execute(
        insert(SyncRun).values(
            id=run_id,
            run_type=run_type,
            scope_type=scope_type,
            scope_id=scope_id,
            trigger=trigger,
            status=status,
            events_found=events_found,
            processed=processed,
            matched=matched,
            errors=errors,
            detail=detail or {},
            started_at=started_at,
            finished_at=utc_now(),
        )
    )
    logger.info(
        "sync_run_recorded",
        run_type=run_type,
        scope_id=scope_id,
        status=status,
        processed=processed,
        matched=matched,
        errors=errors,
    )
    return run_id
