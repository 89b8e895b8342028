from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from sync_stays.models.bookings import DIRECT_SOURCE, Booking
from sync_stays.models.properties import Property
from sync_stays.normalizers.bookings import is_placeholder_name


def display_guest_name(booking: Mapping[str, Any]) -> Optional[str]:
    """
    Guest name shown to users: a manual override always wins over automation.

    Args:
        booking: Booking row mapping

    Returns:
        Optional[str]: Manual name, else the stored guest name
    """
    return booking.get("manual_guest_name") or booking.get("guest_name")


def enrichment_status(booking: Mapping[str, Any]) -> str:
    """
    Enrichment state of a booking: unmatched, matched or overridden.

    Args:
        booking: Booking row mapping

    Returns:
        str: Current state
    """
    if booking.get("manual_guest_name") or booking.get("manual_connection_id"):
        return "overridden"
    if booking.get("enriched_at") is not None:
        return "matched"
    return "unmatched"


def has_real_identity(booking: Mapping[str, Any]) -> bool:
    """True if the booking's displayed guest is a real person, not a placeholder."""
    return not is_placeholder_name(display_guest_name(booking))


def get_booking(conn: Connection, booking_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch one booking.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        booking_id (str): Booking ID.

    Returns:
        Optional[dict[str, Any]]: Booking row, or None if it does not exist.
    """
    stmt = select(Booking.__table__).where(Booking.id == booking_id)
    row = conn.execute(stmt).mappings().first()
    return dict(row) if row else None


def list_active_feed_bookings(conn: Connection, feed_id: str) -> list[dict[str, Any]]:
    """Active bookings produced by one feed, oldest first."""
    stmt = (
        select(Booking.__table__)
        .where(Booking.source_feed_id == feed_id, Booking.is_active.is_(True))
        .order_by(Booking.created_at, Booking.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]


def find_active_by_stay(
    conn: Connection, property_id: str, check_in: datetime, check_out: datetime
) -> list[dict[str, Any]]:
    """
    Active bookings of a property with exactly this (check-in, check-out), any feed.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property ID.
        check_in (datetime): UTC check-in.
        check_out (datetime): UTC check-out.

    Returns:
        list[dict[str, Any]]: Matching bookings, oldest first.
    """
    stmt = (
        select(Booking.__table__)
        .where(
            Booking.property_id == property_id,
            Booking.check_in == check_in,
            Booking.check_out == check_out,
            Booking.is_active.is_(True),
        )
        .order_by(Booking.created_at, Booking.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]


def list_enrichment_candidates(conn: Connection, property_id: str) -> list[dict[str, Any]]:
    """
    Active, non-overridden feed bookings of a property for the Enrichment Matcher.

    Direct bookings are left out: their guest was typed in by a user.

    Placeholder filtering happens in Python since it depends on name rules.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_id (str): Property ID.

    Returns:
        list[dict[str, Any]]: Booking rows ordered by check-in.
    """
    stmt = (
        select(Booking.__table__)
        .where(
            Booking.property_id == property_id,
            Booking.is_active.is_(True),
            Booking.manual_guest_name.is_(None),
            Booking.manual_connection_id.is_(None),
            Booking.source_type != DIRECT_SOURCE,
        )
        .order_by(Booking.check_in, Booking.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]


def list_bookings_enriched_by(conn: Connection, fact_ids: list[str]) -> dict[str, str]:
    """
    Map fact ID to the active booking it already enriched.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        fact_ids (list[str]): Fact IDs to look up.

    Returns:
        dict[str, str]: fact_id -> booking_id
    """
    if not fact_ids:
        return {}
    stmt = select(Booking.enrichment_fact_id, Booking.id).where(
        Booking.enrichment_fact_id.in_(fact_ids), Booking.is_active.is_(True)
    )
    return {fact_id: booking_id for fact_id, booking_id in conn.execute(stmt).all()}


def list_active_bookings_near(
    conn: Connection,
    property_ids: list[str],
    start: datetime,
    end: datetime,
    reservation_code: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Active bookings on several properties that check in within [start, end]
    or carry the given reservation code, with each property's timezone.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        property_ids (list[str]): Properties to search.
        start (datetime): Earliest UTC check-in.
        end (datetime): Latest UTC check-in.
        reservation_code (Optional[str]): Code to match regardless of dates.

    Returns:
        list[dict[str, Any]]: Booking rows plus a "timezone" key.
    """
    if not property_ids:
        return []
    window = and_(Booking.check_in >= start, Booking.check_in <= end)
    if reservation_code:
        window = or_(window, Booking.reservation_code == reservation_code)
    stmt = (
        select(Booking.__table__, Property.timezone)
        .join(Property, Property.id == Booking.property_id)
        .where(Booking.property_id.in_(property_ids), Booking.is_active.is_(True), window)
        .order_by(Booking.property_id, Booking.check_in)
    )
    return [dict(row) for row in conn.execute(stmt).mappings().all()]
