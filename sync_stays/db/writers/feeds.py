from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.engine import Connection

from sync_stays.models.feeds import Feed


def record_feed_status(
    conn: Connection,
    feed_id: str,
    *,
    status: str,
    now: datetime,
    error: Optional[str] = None,
    http_status: Optional[int] = None,
    event_count: Optional[int] = None,
    booking_count: Optional[int] = None,
) -> None:
    """
    Write the outcome of the latest sync attempt onto the feed row.

    Args:
        conn: Active database connection (within transaction)
        feed_id: Feed ID
        status: success or error
        now: Attempt timestamp
        error: Error message for failed attempts
        http_status: Last HTTP status seen, when known
        event_count: Events parsed from the document
        booking_count: Active bookings the feed holds after reconciliation
    """
    values = {
        "last_synced_at": now,
        "last_sync_status": status,
        "last_error": error,
        "last_http_status": http_status,
        "updated_at": now,
    }
    if event_count is not None:
        values["last_event_count"] = event_count
    if booking_count is not None:
        values["last_booking_count"] = booking_count
    conn.execute(update(Feed).where(Feed.id == feed_id).values(**values))


def set_feed_active(conn: Connection, feed_id: str, active: bool, now: datetime) -> bool:
    """
    Flip a feed's active flag.

    Returns:
        bool: True if the flag changed
    """
    result = conn.execute(
        update(Feed)
        .where(Feed.id == feed_id, Feed.is_active.is_not(active))
        .values(is_active=active, updated_at=now)
    )
    return result.rowcount > 0
