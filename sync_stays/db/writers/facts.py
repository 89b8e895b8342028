from datetime import datetime
from typing import Any, Optional

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from sync_stays.models.base import new_id
from sync_stays.models.facts import ReservationFact
from sync_stays.schemas.messages import ExtractedFact

FACT_FIELDS = ("platform", "check_in", "check_out", "guest_name", "guest_count", "confirmation_code")


def insert_fact(
    conn: Connection,
    *,
    connection_id: str,
    property_id: Optional[str],
    message_id: str,
    fact: ExtractedFact,
    now: datetime,
) -> str:
    """
    Insert the first fact extracted from a message.

    Args:
        conn: Active database connection (within transaction)
        connection_id: Mail connection the message came through
        property_id: Property the fact belongs to, when unambiguous
        message_id: Provider message ID
        fact: Extracted fields
        now: Extraction timestamp

    Returns:
        str: ID of the new fact
    """
    fact_id = new_id()
    values: dict[str, Any] = {field: getattr(fact, field) for field in FACT_FIELDS}
    conn.execute(
        insert(ReservationFact).values(
            id=fact_id,
            connection_id=connection_id,
            property_id=property_id,
            source_message_id=message_id,
            field_sources=dict(fact.field_sources),
            extracted_at=now,
            updated_at=now,
            **values,
        )
    )
    return fact_id


def update_fact(conn: Connection, fact_id: str, changes: dict[str, Any], now: datetime) -> None:
    """
    Apply merged field changes to an existing fact.

    Callers pass only the output of normalizers.facts.merge_fact, which never
    contains a populated-to-empty transition.

    Args:
        conn: Active database connection (within transaction)
        fact_id: Fact ID
        changes: Column -> new value
        now: Update timestamp
    """
    if not changes:
        return
    conn.execute(
        update(ReservationFact)
        .where(ReservationFact.id == fact_id)
        .values(**changes, updated_at=now)
    )
