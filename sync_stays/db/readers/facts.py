from typing import Any, Optional, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from sync_stays.models.facts import ReservationFact


def get_fact_for_message(
    conn: Connection, connection_id: str, message_id: str
) -> Optional[dict[str, Any]]:
    """
    Fetch the fact previously extracted from one message.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        connection_id (str): Mail connection ID.
        message_id (str): Provider message ID.

    Returns:
        Optional[dict[str, Any]]: Fact row, or None if the message has no fact yet.
    """
    stmt = select(ReservationFact.__table__).where(
        ReservationFact.connection_id == connection_id,
        ReservationFact.source_message_id == message_id,
    )
    row = conn.execute(stmt).mappings().first()
    return dict(row) if row else None


def list_facts_for_property(
    conn: Connection, property_id: str, connection_ids: Sequence[str]
) -> list[dict[str, Any]]:
    """
    Facts that may describe stays at a property.

    A fact belongs to the property when its property_id says so, or when it has
    no property_id and came through a connection linked to the property.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property ID.
        connection_ids (Sequence[str]): Connections linked to the property.

    Returns:
        list[dict[str, Any]]: Fact rows, newest extraction first.
    """
    scope = ReservationFact.property_id == property_id
    if connection_ids:
        scope = or_(
            scope,
            and_(
                ReservationFact.property_id.is_(None),
                ReservationFact.connection_id.in_(list(connection_ids)),
            ),
        )
    stmt = (
        select(ReservationFact.__table__)
        .where(scope)
        .order_by(ReservationFact.extracted_at.desc(), ReservationFact.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]
