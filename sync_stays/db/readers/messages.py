from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.engine import Connection

from sync_stays.models.messages import MailMessage


def list_stored_messages(
    conn: Connection, connection_id: str, pending_only: bool = False
) -> list[dict[str, Any]]:
    """
    Raw messages kept for a connection, oldest first.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        connection_id (str): Mail connection ID.
        pending_only (bool): Only messages never processed or changed since.

    Returns:
        list[dict[str, Any]]: Message rows.
    """
    stmt = select(MailMessage.__table__).where(MailMessage.connection_id == connection_id)
    if pending_only:
        stmt = stmt.where(
            or_(
                MailMessage.processed_at.is_(None),
                MailMessage.updated_at > MailMessage.processed_at,
            )
        )
    stmt = stmt.order_by(MailMessage.received_at, MailMessage.message_id)
    return [dict(row) for row in conn.execute(stmt).mappings().all()]
