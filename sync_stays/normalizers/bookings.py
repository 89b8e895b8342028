"""
Normalization of parsed calendar events into ledger booking candidates.
"""

import re
from datetime import tzinfo
from typing import Any, Mapping, Optional

from sync_stays.schemas.calendar import BookingCandidate, CalendarEvent
from sync_stays.utils.datetime import to_utc

PLACEHOLDER_NAME = "Reserved"

# Summaries that carry no guest identity
PLACEHOLDER_MARKERS = ("reserved", "blocked", "not available", "unavailable")

# Airbnb puts the reservation URL in DESCRIPTION, other platforms a labelled line
RESERVATION_CODE_PATTERNS = (
    re.compile(r"/reservations/details/([A-Z0-9]{6,15})\b"),
    re.compile(r"\bReservation (?:ID|code|number)\s*[:#]?\s*([A-Z0-9-]{4,20})\b", re.IGNORECASE),
)


def is_placeholder_name(name: Optional[str]) -> bool:
    """
    Return True if a guest name carries no real guest identity.

    Args:
        name: Guest name as stored or as derived from a summary

    Returns:
        bool: True for empty values and "Reserved"/"Blocked"-style markers
    """
    if not name or not name.strip():
        return True
    lowered = name.strip().lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def provisional_guest_name(summary: Optional[str]) -> str:
    """
    Derive the provisional guest name from an event summary.

    Args:
        summary: VEVENT SUMMARY

    Returns:
        str: The stripped summary, or PLACEHOLDER_NAME when it has no identity
    """
    if is_placeholder_name(summary):
        return PLACEHOLDER_NAME
    return summary.strip()  # type: ignore[union-attr]


def parse_reservation_code(description: Optional[str]) -> Optional[str]:
    """
    Pull a platform reservation code out of an event description.

    Args:
        description: VEVENT DESCRIPTION

    Returns:
        Optional[str]: The code, or None if the description carries none
    """
    if not description:
        return None
    for pattern in RESERVATION_CODE_PATTERNS:
        match = pattern.search(description)
        if match:
            return match.group(1).upper()
    return None


def normalize_event(event: CalendarEvent, feed: Mapping[str, Any], tz: tzinfo) -> BookingCandidate:
    """
    Convert one calendar event into a booking candidate.

    Args:
        event: Parsed VEVENT
        feed: Feed row mapping (id, property_id, source_type)
        tz: Property timezone used for naive timestamps

    Returns:
        BookingCandidate: Candidate with UTC check-in/check-out
    """
    guest_name = provisional_guest_name(event.summary)
    return BookingCandidate(
        property_id=feed["property_id"],
        source_feed_id=feed["id"],
        source_type=feed["source_type"] or "other",
        external_uid=event.uid,
        check_in=to_utc(event.start, tz),
        check_out=to_utc(event.end, tz),
        guest_name=guest_name,
        is_placeholder=guest_name == PLACEHOLDER_NAME,
        reservation_code=parse_reservation_code(event.description),
    )


def normalize_events(
    events: list[CalendarEvent], feed: Mapping[str, Any], tz: tzinfo
) -> list[BookingCandidate]:
    """Normalize every event of one feed."""
    return [normalize_event(event, feed, tz) for event in events]
