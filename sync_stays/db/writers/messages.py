import hashlib
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import update
from sqlalchemy.engine import Connection

from sync_stays.db.writers._upsert import upsert_with_distinct_check
from sync_stays.models.base import new_id
from sync_stays.models.messages import MailMessage
from sync_stays.schemas.messages import InboundMessage

logger = structlog.get_logger(__name__)


def content_hash(message: InboundMessage) -> str:
    """SHA-256 over the parts of a message that feed extraction."""
    digest = hashlib.sha256()
    for part in (message.subject, message.body_text, message.body_html, message.sender):
        digest.update((part or "").encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def store_messages(
    conn: Connection, connection_id: str, messages: list[InboundMessage], now: datetime
) -> int:
    """
    Upsert raw messages for a connection, rewriting only changed content.

    Args:
        conn: Active database connection (within transaction)
        connection_id: Mail connection ID
        messages: Messages handed over by the mail collaborator
        now: Timestamp for created_at/updated_at

    Returns:
        int: Number of distinct messages submitted for storage
    """
    rows: dict[str, dict[str, Any]] = {}
    for message in messages:
        rows[message.message_id] = {
            "id": new_id(),
            "connection_id": connection_id,
            "message_id": message.message_id,
            "sender": message.sender,
            "subject": message.subject,
            "body_text": message.body_text,
            "body_html": message.body_html,
            "content_hash": content_hash(message),
            "received_at": message.received_at,
            "created_at": now,
            "updated_at": now,
        }

    if len(rows) < len(messages):
        logger.warning(
            "duplicate_message_ids_in_batch",
            connection_id=connection_id,
            duplicates=len(messages) - len(rows),
        )

    upsert_with_distinct_check(
        conn=conn,
        table=MailMessage,
        rows=list(rows.values()),
        conflict_columns=["connection_id", "message_id"],
        distinct_column="content_hash",
        update_columns=[
            "sender",
            "subject",
            "body_text",
            "body_html",
            "content_hash",
            "received_at",
            "updated_at",
        ],
    )
    return len(rows)


def mark_processed(conn: Connection, connection_id: str, message_id: str, now: datetime) -> None:
    """
    Stamp processed_at on a stored message after extraction.

    updated_at is written with the same value so the message stops counting
    as pending until its content changes again.
    """
    conn.execute(
        update(MailMessage)
        .where(MailMessage.connection_id == connection_id, MailMessage.message_id == message_id)
        .values(processed_at=now, updated_at=now)
    )
