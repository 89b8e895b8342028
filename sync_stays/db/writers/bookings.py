"""
Ledger writes: calendar reconciliation, reset cascades, manual bookings and
the manual override transitions.

Every write here is a field-level merge on existing rows or an insert of a new
row. Bookings are never deleted; they are soft-deleted through is_active.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

import structlog
from sqlalchemy import and_, insert, update
from sqlalchemy.engine import Connection

from sync_stays.db.readers.bookings import (
    find_active_by_stay,
    has_real_identity,
    list_active_feed_bookings,
)
from sync_stays.exceptions import ReconciliationConflict
from sync_stays.metrics import bookings_reconciled
from sync_stays.models.base import new_id
from sync_stays.models.bookings import DIRECT_SOURCE, Booking
from sync_stays.normalizers.bookings import is_placeholder_name
from sync_stays.schemas.calendar import BookingCandidate
from sync_stays.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class ReconcileResult:
    """Counters for one feed reconciliation."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    deactivated: int = 0
    suppressed: int = 0
    conflicts: list[ReconciliationConflict] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.unchanged + self.suppressed


def _is_automation_locked(booking: Mapping[str, Any]) -> bool:
    """Guest detail owned by enrichment or a manual override is off-limits to calendar data."""
    return (
        booking.get("enriched_at") is not None
        or booking.get("manual_guest_name") is not None
        or booking.get("manual_connection_id") is not None
    )


def canonical_candidates(candidates: Sequence[BookingCandidate]) -> list[BookingCandidate]:
    """
    Order candidates canonically and collapse repeated UIDs.

    Real names sort before placeholders, then by UID and dates, so which of two
    same-stay candidates becomes the ledger row never depends on feed order.

    Args:
        candidates: Candidates from one feed fetch

    Returns:
        list[BookingCandidate]: One candidate per UID in canonical order
    """
    counts = Counter(c.external_uid for c in candidates)
    dups = [uid for uid, count in counts.items() if count > 1]
    if dups:
        logger.error("duplicate_event_uids_in_feed", count=len(dups), uids=dups[:10])

    ordered = sorted(
        candidates,
        key=lambda c: (c.is_placeholder, c.external_uid, c.check_in, c.check_out, c.guest_name),
    )
    seen: set[str] = set()
    unique: list[BookingCandidate] = []
    for candidate in ordered:
        if candidate.external_uid in seen:
            continue
        seen.add(candidate.external_uid)
        unique.append(candidate)
    return unique


def _soft_delete(conn: Connection, booking_ids: list[str], now: datetime) -> int:
    if not booking_ids:
        return 0
    result = conn.execute(
        update(Booking)
        .where(Booking.id.in_(booking_ids), Booking.is_active.is_(True))
        .values(is_active=False, updated_at=now)
    )
    return result.rowcount


def _update_existing(
    conn: Connection,
    existing: Mapping[str, Any],
    candidate: BookingCandidate,
    now: datetime,
) -> bool:
    """
    Merge a candidate into the booking it already produced.

    Returns:
        bool: True if any mutable field changed
    """
    changes: dict[str, Any] = {}
    if existing["check_in"] != candidate.check_in:
        changes["check_in"] = candidate.check_in
    if existing["check_out"] != candidate.check_out:
        changes["check_out"] = candidate.check_out
    if candidate.reservation_code and existing["reservation_code"] != candidate.reservation_code:
        changes["reservation_code"] = candidate.reservation_code
    if existing["external_uid"] != candidate.external_uid:
        changes["external_uid"] = candidate.external_uid

    name_changed = existing["guest_name"] != candidate.guest_name
    downgrade = candidate.is_placeholder and not is_placeholder_name(existing["guest_name"])
    if name_changed and not downgrade and not _is_automation_locked(existing):
        changes["guest_name"] = candidate.guest_name

    values: dict[str, Any] = {"last_synced_at": now}
    if changes:
        values.update(changes, updated_at=now)
        logger.debug("booking_updated", booking_id=existing["id"], fields=sorted(changes))
    conn.execute(update(Booking).where(Booking.id == existing["id"]).values(**values))
    return bool(changes)


def _suppress_duplicate(
    conn: Connection,
    candidate: BookingCandidate,
    same_stay: list[dict[str, Any]],
    now: datetime,
) -> bool:
    """
    Decide whether a new candidate duplicates an active booking of the same stay.

    When either side has a real guest identity the existing row stays the single
    ledger entry. A placeholder row that automation still owns adopts the
    candidate's real name.

    Returns:
        bool: True if the candidate must not be inserted
    """
    for existing in same_stay:
        existing_real = has_real_identity(existing)
        if not existing_real and candidate.is_placeholder:
            continue

        if not existing_real and not _is_automation_locked(existing):
            conn.execute(
                update(Booking)
                .where(Booking.id == existing["id"])
                .values(guest_name=candidate.guest_name, last_synced_at=now, updated_at=now)
            )
            logger.info(
                "duplicate_adopted_guest_name",
                booking_id=existing["id"],
                external_uid=candidate.external_uid,
            )
        else:
            logger.info(
                "duplicate_suppressed",
                booking_id=existing["id"],
                external_uid=candidate.external_uid,
                source_feed_id=candidate.source_feed_id,
            )
        return True
    return False


def _insert_booking(conn: Connection, candidate: BookingCandidate, now: datetime) -> str:
    booking_id = new_id()
    conn.execute(
        insert(Booking).values(
            id=booking_id,
            property_id=candidate.property_id,
            external_uid=candidate.external_uid,
            source_type=candidate.source_type,
            source_feed_id=candidate.source_feed_id,
            check_in=candidate.check_in,
            check_out=candidate.check_out,
            guest_name=candidate.guest_name,
            reservation_code=candidate.reservation_code,
            is_active=True,
            last_synced_at=now,
            created_at=now,
            updated_at=now,
        )
    )
    return booking_id


def reconcile_feed(
    conn: Connection,
    feed: Mapping[str, Any],
    candidates: Sequence[BookingCandidate],
    now: Optional[datetime] = None,
) -> ReconcileResult:
    """
    Merge the current candidates of one feed into the property ledger.

    - Active bookings of the feed whose UID is gone are soft-deleted
      (cancellations). Legacy rows without a UID are kept until the end so a
      candidate with the same stay can claim them.
    - A candidate whose UID matches an active booking of the feed updates it.
    - Otherwise duplicate suppression runs against every active booking of
      the property with identical dates; if nothing suppresses the candidate
      a new active booking is inserted.

    Running it twice with the same candidates writes no new rows and changes
    no guest detail the second time.

    Args:
        conn: Active database connection (within transaction)
        feed: Feed row mapping (id, property_id, source_type)
        candidates: Normalized candidates from the latest fetch
        now: Sync timestamp (defaults to current UTC time)

    Returns:
        ReconcileResult: Counters and skipped conflicts

    Raises:
        SQLAlchemyError: If the ledger cannot be read or written
    """
    now = now or utc_now()
    result = ReconcileResult()
    ordered = canonical_candidates(candidates)

    existing_rows = list_active_feed_bookings(conn, feed["id"])
    by_uid: dict[str, dict[str, Any]] = {}
    legacy: list[dict[str, Any]] = []
    for row in existing_rows:
        if row["external_uid"] is None:
            legacy.append(row)
        else:
            by_uid.setdefault(row["external_uid"], row)

    current_uids = {c.external_uid for c in ordered}
    cancelled = [row["id"] for uid, row in by_uid.items() if uid not in current_uids]
    result.deactivated += _soft_delete(conn, cancelled, now)
    if cancelled:
        logger.info("bookings_cancelled", feed_id=feed["id"], count=len(cancelled))

    for candidate in ordered:
        if candidate.check_out <= candidate.check_in:
            conflict = ReconciliationConflict(
                f"check_out {candidate.check_out.isoformat()} is not after "
                f"check_in {candidate.check_in.isoformat()}",
                external_uid=candidate.external_uid,
            )
            logger.warning(
                "candidate_skipped",
                feed_id=feed["id"],
                external_uid=candidate.external_uid,
                error=str(conflict),
            )
            bookings_reconciled.labels(action="conflict").inc()
            result.conflicts.append(conflict)
            continue

        existing = by_uid.get(candidate.external_uid)
        if existing is None:
            existing = next(
                (
                    row
                    for row in legacy
                    if row["check_in"] == candidate.check_in
                    and row["check_out"] == candidate.check_out
                ),
                None,
            )
            if existing is not None:
                legacy.remove(existing)
                logger.info(
                    "legacy_booking_claimed",
                    booking_id=existing["id"],
                    external_uid=candidate.external_uid,
                )

        if existing is not None:
            if _update_existing(conn, existing, candidate, now):
                result.updated += 1
                bookings_reconciled.labels(action="updated").inc()
            else:
                result.unchanged += 1
            continue

        same_stay = find_active_by_stay(
            conn, candidate.property_id, candidate.check_in, candidate.check_out
        )
        if _suppress_duplicate(conn, candidate, same_stay, now):
            result.suppressed += 1
            bookings_reconciled.labels(action="suppressed").inc()
            continue

        booking_id = _insert_booking(conn, candidate, now)
        result.created += 1
        bookings_reconciled.labels(action="created").inc()
        logger.debug("booking_created", booking_id=booking_id, external_uid=candidate.external_uid)

    result.deactivated += _soft_delete(conn, [row["id"] for row in legacy], now)
    if result.deactivated:
        bookings_reconciled.labels(action="deactivated").inc(result.deactivated)

    logger.info(
        "feed_reconciled",
        feed_id=feed["id"],
        property_id=feed["property_id"],
        created=result.created,
        updated=result.updated,
        unchanged=result.unchanged,
        deactivated=result.deactivated,
        suppressed=result.suppressed,
        conflicts=len(result.conflicts),
    )
    return result


def deactivate_feed_bookings(conn: Connection, feed_id: str, now: Optional[datetime] = None) -> int:
    """
    Soft-delete every active booking a feed produced (feed disable cascade).

    Idempotent: a second call finds nothing active and returns 0.

    Args:
        conn: Active database connection (within transaction)
        feed_id: Feed ID
        now: Update timestamp

    Returns:
        int: Number of bookings transitioned to inactive
    """
    result = conn.execute(
        update(Booking)
        .where(Booking.source_feed_id == feed_id, Booking.is_active.is_(True))
        .values(is_active=False, updated_at=now or utc_now())
    )
    return result.rowcount


def reset_property_bookings(
    conn: Connection, property_id: str, now: Optional[datetime] = None
) -> int:
    """
    Soft-delete every active non-direct booking of a property.

    Manual (direct) bookings are preserved. Idempotent.

    Args:
        conn: Active database connection (within transaction)
        property_id: Property ID
        now: Update timestamp

    Returns:
        int: Number of bookings transitioned to inactive
    """
    result = conn.execute(
        update(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.source_type != DIRECT_SOURCE,
            Booking.is_active.is_(True),
        )
        .values(is_active=False, updated_at=now or utc_now())
    )
    return result.rowcount


def create_manual_booking(
    conn: Connection,
    *,
    property_id: str,
    check_in: datetime,
    check_out: datetime,
    guest_name: str,
    guest_count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a direct booking entered by a user.

    Direct bookings belong to no feed and survive property resets.

    Returns:
        str: ID of the new booking

    Raises:
        ReconciliationConflict: If check_out is not after check_in
    """
    if check_out <= check_in:
        raise ReconciliationConflict("check_out must be after check_in")
    now = now or utc_now()
    booking_id = new_id()
    conn.execute(
        insert(Booking).values(
            id=booking_id,
            property_id=property_id,
            source_type=DIRECT_SOURCE,
            check_in=check_in,
            check_out=check_out,
            guest_name=guest_name,
            guest_count=guest_count,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
    )
    return booking_id


def set_manual_override(
    conn: Connection,
    booking_id: str,
    *,
    guest_name: Optional[str] = None,
    connection_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Record a user's explicit guest choice on a booking (-> overridden).

    Args:
        conn: Active database connection (within transaction)
        booking_id: Booking ID
        guest_name: Manual guest name
        connection_id: Mail connection the user linked

    Returns:
        bool: True if the booking exists

    Raises:
        ValueError: If neither guest_name nor connection_id is given
    """
    if not guest_name and not connection_id:
        raise ValueError("A manual override needs a guest name or a connection")
    result = conn.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(
            manual_guest_name=guest_name,
            manual_connection_id=connection_id,
            updated_at=now or utc_now(),
        )
    )
    return result.rowcount > 0


def clear_manual_override(conn: Connection, booking_id: str, now: Optional[datetime] = None) -> bool:
    """
    Explicit reset of a manual override back to the automated states.

    Enrichment already stored on the row is kept, so the booking returns to
    matched or unmatched.

    Returns:
        bool: True if the booking exists
    """
    result = conn.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(manual_guest_name=None, manual_connection_id=None, updated_at=now or utc_now())
    )
    return result.rowcount > 0


def apply_enrichment(
    conn: Connection,
    booking_id: str,
    fact: Mapping[str, Any],
    match: str,
    now: datetime,
) -> bool:
    """
    Write a matched fact's guest detail into a booking.

    The UPDATE is guarded on the manual override columns, so a user action
    that lands between matching and writing always wins.

    Args:
        conn: Active database connection (within transaction)
        booking_id: Booking ID
        fact: Fact row mapping (id, guest_name, guest_count)
        match: Tier that matched (confirmation_code, exact_dates, date_slack)
        now: Enrichment timestamp

    Returns:
        bool: True if the booking was updated
    """
    values: dict[str, Any] = {
        "enriched_at": now,
        "enrichment_fact_id": fact["id"],
        "enrichment_match": match,
        "updated_at": now,
    }
    if fact.get("guest_name"):
        values["guest_name"] = fact["guest_name"]
    if fact.get("guest_count") is not None:
        values["guest_count"] = fact["guest_count"]

    result = conn.execute(
        update(Booking)
        .where(
            and_(
                Booking.id == booking_id,
                Booking.is_active.is_(True),
                Booking.manual_guest_name.is_(None),
                Booking.manual_connection_id.is_(None),
            )
        )
        .values(**values)
    )
    return result.rowcount > 0
