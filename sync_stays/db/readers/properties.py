from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_stays.models.connections import ConnectionProperty
from sync_stays.models.feeds import Feed
from sync_stays.models.properties import Property


def get_property(conn: Connection, property_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch one property.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property ID.

    Returns:
        Optional[dict[str, Any]]: Property row, or None if it does not exist.
    """
    stmt = select(Property.__table__).where(Property.id == property_id)
    row = conn.execute(stmt).mappings().first()
    return dict(row) if row else None


def list_property_ids(conn: Connection) -> list[str]:
    """Return IDs of properties that have at least one active feed."""
    stmt = (
        select(Property.id)
        .join(Feed, Feed.property_id == Property.id)
        .where(Feed.is_active.is_(True))
        .distinct()
        .order_by(Property.id)
    )
    return list(conn.execute(stmt).scalars().all())


def get_feed(conn: Connection, feed_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch one feed regardless of its active flag.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        feed_id (str): Feed ID.

    Returns:
        Optional[dict[str, Any]]: Feed row, or None if it does not exist.
    """
    stmt = select(Feed.__table__).where(Feed.id == feed_id)
    row = conn.execute(stmt).mappings().first()
    return dict(row) if row else None


def list_active_feeds(conn: Connection, property_id: str) -> list[dict[str, Any]]:
    """
    Fetch the active feeds of a property in a stable order.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property ID.

    Returns:
        list[dict[str, Any]]: Feed rows ordered by creation time.
    """
    stmt = (
        select(Feed.__table__)
        .where(Feed.property_id == property_id, Feed.is_active.is_(True))
        .order_by(Feed.created_at, Feed.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]


def list_connection_property_ids(conn: Connection, connection_id: str) -> list[str]:
    """Return the properties a mail connection is linked to."""
    stmt = (
        select(ConnectionProperty.property_id)
        .where(ConnectionProperty.connection_id == connection_id)
        .order_by(ConnectionProperty.property_id)
    )
    return list(conn.execute(stmt).scalars().all())


def list_property_connection_ids(conn: Connection, property_id: str) -> list[str]:
    """Return the mail connections linked to a property."""
    stmt = (
        select(ConnectionProperty.connection_id)
        .where(ConnectionProperty.property_id == property_id)
        .order_by(ConnectionProperty.connection_id)
    )
    return list(conn.execute(stmt).scalars().all())
