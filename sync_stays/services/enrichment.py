"""
Enrichment Matcher: joins reservation facts to ledger bookings.

Matching tiers, best first:
- confirmation_code: the booking's reservation code equals the fact's code
- exact_dates: fact check-in/check-out equal the booking's local stay dates
- date_slack: both ends within ENRICHMENT_DATE_SLACK_DAYS

A fact without a guest name can only match on its confirmation code; it then
contributes the guest count alone.

Among candidate pairs the order is tier, then most recent extraction, then
completeness (name and count both present), then fact id. Pairs are assigned
greedily in that order so each booking takes at most one fact and each fact
enriches at most one active booking.

A fact with a confirmation code, a check-in and a guest name that matches no
active booking at all is reported as missing from the calendar.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.engine import Connection

from sync_stays.config import ENRICHMENT_DATE_SLACK_DAYS
from sync_stays.db.readers.bookings import (
    list_active_bookings_near,
    list_bookings_enriched_by,
    list_enrichment_candidates,
)
from sync_stays.db.readers.facts import list_facts_for_property
from sync_stays.db.readers.properties import (
    get_property,
    list_connection_property_ids,
    list_property_connection_ids,
)
from sync_stays.db.writers.bookings import apply_enrichment
from sync_stays.db.writers.sync_runs import record_run
from sync_stays.exceptions import NotFoundError
from sync_stays.metrics import bookings_enriched, facts_missing_from_calendar
from sync_stays.models.bookings import DIRECT_SOURCE
from sync_stays.normalizers.bookings import is_placeholder_name
from sync_stays.schemas.summaries import EnrichmentSummary
from sync_stays.utils.datetime import property_zone, stay_date, utc_now

logger = structlog.get_logger(__name__)

TIER_RANK = {"confirmation_code": 0, "exact_dates": 1, "date_slack": 2}


@dataclass(frozen=True)
class MatchCandidate:
    """One admissible (booking, fact) pairing."""

    booking: Mapping[str, Any]
    fact: Mapping[str, Any]
    tier: str

    def sort_key(self) -> tuple:
        fact = self.fact
        complete = fact.get("guest_name") is not None and fact.get("guest_count") is not None
        extracted_at: datetime = fact["extracted_at"]
        return (
            TIER_RANK[self.tier],
            -extracted_at.timestamp(),
            0 if complete else 1,
            fact["id"],
            self.booking["check_in"],
            self.booking["id"],
        )


def is_eligible(booking: Mapping[str, Any]) -> bool:
    """
    A booking still lacks a confirmed guest identity.

    Direct bookings carry the guest a user typed in and are never eligible.

    Args:
        booking: Booking row (already filtered to active and not overridden)

    Returns:
        bool: True for placeholder names or feed bookings never enriched
    """
    if booking.get("source_type") == DIRECT_SOURCE:
        return False
    return is_placeholder_name(booking.get("guest_name")) or booking.get("enriched_at") is None


def match_tier(
    booking: Mapping[str, Any],
    fact: Mapping[str, Any],
    tz: tzinfo,
    slack_days: int = ENRICHMENT_DATE_SLACK_DAYS,
) -> Optional[str]:
    """
    Best tier under which a fact describes a booking.

    Facts without a guest name only match on the confirmation code.

    Args:
        booking: Booking row
        fact: Fact row
        tz: Property timezone, for the booking's local stay dates
        slack_days: Tolerance for the date_slack tier

    Returns:
        Optional[str]: Tier name, or None if the fact does not match
    """
    booking_code = (booking.get("reservation_code") or "").upper()
    fact_code = (fact.get("confirmation_code") or "").upper()
    if booking_code and booking_code == fact_code:
        return "confirmation_code"

    fact_in: Optional[date] = fact.get("check_in")
    fact_out: Optional[date] = fact.get("check_out")
    if fact_in is None or fact_out is None or not fact.get("guest_name"):
        return None

    check_in = stay_date(booking["check_in"], tz)
    check_out = stay_date(booking["check_out"], tz)
    if fact_in == check_in and fact_out == check_out:
        return "exact_dates"

    slack = timedelta(days=slack_days)
    if abs(fact_in - check_in) <= slack and abs(fact_out - check_out) <= slack:
        return "date_slack"
    return None


def _bookings_near_fact(
    conn: Connection, fact: Mapping[str, Any], property_ids: list[str], days: int
) -> list[dict[str, Any]]:
    """Active bookings (any state) checking in near the fact or carrying its code."""
    fact_in: Optional[date] = fact.get("check_in")
    if fact_in is not None:
        anchor = datetime.combine(fact_in, time(0, 0), tzinfo=timezone.utc)
        start, end = anchor - timedelta(days=days + 1), anchor + timedelta(days=days + 2)
    else:
        # Code-only facts: the date window matches nothing
        start = end = datetime(1970, 1, 1, tzinfo=timezone.utc)
    return list_active_bookings_near(
        conn, property_ids, start, end, reservation_code=fact.get("confirmation_code")
    )


def _matches_elsewhere(
    conn: Connection, fact: Mapping[str, Any], property_ids: list[str]
) -> bool:
    """True if the fact matches an active booking on another property by code or exact dates."""
    for row in _bookings_near_fact(conn, fact, property_ids, days=0):
        tier = match_tier(row, fact, property_zone(row.get("timezone")), slack_days=0)
        if tier in ("confirmation_code", "exact_dates"):
            return True
    return False


def is_missing_from_calendar(
    conn: Connection,
    fact: Mapping[str, Any],
    property_ids: list[str],
    today: date,
    slack_days: int = ENRICHMENT_DATE_SLACK_DAYS,
) -> bool:
    """
    A confirmed reservation with no active booking for it on any feed.

    Only facts with a confirmation code, a check-in and a guest name qualify,
    and stays already over by ``today`` are never reported.

    Args:
        conn: Active database connection
        fact: Fact row that found no eligible booking
        property_ids: Properties the fact may belong to
        today: Current date
        slack_days: Tolerance for the date_slack tier

    Returns:
        bool: True if no active booking matches the fact under any tier
    """
    if not (fact.get("confirmation_code") and fact.get("check_in") and fact.get("guest_name")):
        return False
    if (fact.get("check_out") or fact["check_in"]) < today:
        return False
    for row in _bookings_near_fact(conn, fact, property_ids, days=slack_days):
        if match_tier(row, fact, property_zone(row.get("timezone")), slack_days) is not None:
            return False
    return True


def enrich_property(
    conn: Connection,
    property_id: str,
    *,
    trigger: str = "manual",
    now: Optional[datetime] = None,
    slack_days: int = ENRICHMENT_DATE_SLACK_DAYS,
) -> EnrichmentSummary:
    """
    Merge the best matching reservation facts into a property's bookings.

    Bookings with a manual override are never read for matching, and the
    write itself is guarded on the override columns. Facts that name a
    confirmed reservation absent from every feed are listed in
    ``missing_from_calendar``.

    Args:
        conn: Active database connection (within transaction)
        property_id: Property ID
        trigger: manual or scheduled, recorded on the audit row
        now: Enrichment timestamp
        slack_days: Tolerance for the date_slack tier

    Returns:
        EnrichmentSummary: Counts, the list of merges and the missing facts

    Raises:
        NotFoundError: If the property does not exist
        SQLAlchemyError: If the ledger cannot be read or written
    """
    started_at = utc_now()
    now = now or started_at
    prop = get_property(conn, property_id)
    if prop is None:
        raise NotFoundError(f"Property {property_id} not found")
    tz = property_zone(prop["timezone"])

    summary = EnrichmentSummary(property_id=property_id)
    bookings = [b for b in list_enrichment_candidates(conn, property_id) if is_eligible(b)]
    summary.eligible = len(bookings)

    connection_ids = list_property_connection_ids(conn, property_id)
    facts = list_facts_for_property(conn, property_id, connection_ids)
    used = list_bookings_enriched_by(conn, [f["id"] for f in facts])
    facts = [f for f in facts if f["id"] not in used]

    linked: dict[str, list[str]] = {}
    candidates: list[MatchCandidate] = []
    for fact in facts:
        scope = [property_id]
        if fact["property_id"] is None:
            if fact["connection_id"] not in linked:
                linked[fact["connection_id"]] = list_connection_property_ids(
                    conn, fact["connection_id"]
                )
            scope = linked[fact["connection_id"]] or [property_id]

        pairs = []
        for booking in bookings:
            tier = match_tier(booking, fact, tz, slack_days)
            if tier is not None:
                pairs.append(MatchCandidate(booking=booking, fact=fact, tier=tier))

        if not pairs:
            if is_missing_from_calendar(conn, fact, scope, now.date(), slack_days):
                facts_missing_from_calendar.inc()
                summary.missing_from_calendar.append(
                    {
                        "fact_id": fact["id"],
                        "confirmation_code": fact["confirmation_code"],
                        "guest_name": fact["guest_name"],
                        "check_in": fact["check_in"].isoformat(),
                    }
                )
                logger.warning(
                    "booking_missing_from_calendar",
                    fact_id=fact["id"],
                    property_id=property_id,
                    confirmation_code=fact["confirmation_code"],
                )
            continue

        others = [pid for pid in scope if pid != property_id]
        if fact["property_id"] is None and others and _matches_elsewhere(conn, fact, others):
            summary.ambiguous += 1
            logger.warning(
                "ambiguous_fact_skipped",
                fact_id=fact["id"],
                connection_id=fact["connection_id"],
                property_id=property_id,
            )
            continue

        candidates.extend(pairs)

    taken_bookings: set[str] = set()
    taken_facts: set[str] = set()
    for candidate in sorted(candidates, key=MatchCandidate.sort_key):
        booking_id = candidate.booking["id"]
        fact_id = candidate.fact["id"]
        if booking_id in taken_bookings or fact_id in taken_facts:
            continue
        taken_bookings.add(booking_id)
        taken_facts.add(fact_id)

        if not apply_enrichment(conn, booking_id, candidate.fact, candidate.tier, now):
            logger.info("enrichment_skipped_override", booking_id=booking_id, fact_id=fact_id)
            continue

        summary.matched += 1
        bookings_enriched.labels(match=candidate.tier).inc()
        summary.merges.append(
            {
                "booking_id": booking_id,
                "fact_id": fact_id,
                "match": candidate.tier,
                "previous_guest_name": candidate.booking.get("guest_name"),
                "guest_name": candidate.fact["guest_name"],
                "guest_count": candidate.fact.get("guest_count"),
            }
        )
        logger.info(
            "booking_enriched",
            booking_id=booking_id,
            fact_id=fact_id,
            match=candidate.tier,
        )

    record_run(
        conn,
        run_type="enrichment",
        scope_type="property",
        scope_id=property_id,
        trigger=trigger,
        status="success",
        started_at=started_at,
        events_found=len(facts),
        processed=summary.eligible,
        matched=summary.matched,
        detail={
            "merges": summary.merges,
            "ambiguous": summary.ambiguous,
            "missing_from_calendar": summary.missing_from_calendar,
        },
    )
    return summary
