"""
Unit tests for enrichment match tiers and eligibility.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from sync_stays.services.enrichment import MatchCandidate, is_eligible, match_tier
from sync_stays.utils.datetime import to_utc

UTC = timezone.utc


def booking(**overrides: object) -> dict:
    row: dict = {
        "id": "b1",
        "check_in": datetime(2026, 4, 4, 12, 0, tzinfo=UTC),
        "check_out": datetime(2026, 4, 6, 12, 0, tzinfo=UTC),
        "guest_name": "Reserved",
        "reservation_code": None,
        "enriched_at": None,
    }
    row.update(overrides)
    return row


def fact(**overrides: object) -> dict:
    row: dict = {
        "id": "f1",
        "check_in": date(2026, 4, 4),
        "check_out": date(2026, 4, 6),
        "guest_name": "J. Lee",
        "guest_count": 2,
        "confirmation_code": None,
        "extracted_at": datetime(2026, 3, 1, tzinfo=UTC),
    }
    row.update(overrides)
    return row


@pytest.mark.unit
def test_match_tier_exact_dates() -> None:
    """Test that identical stay dates match on the exact tier."""
    assert match_tier(booking(), fact(), UTC) == "exact_dates"


@pytest.mark.unit
def test_match_tier_confirmation_code_wins_over_dates() -> None:
    """Test that an equal code matches on the code tier, case-insensitively."""
    result = match_tier(
        booking(reservation_code="HMABC12345"),
        fact(confirmation_code="hmabc12345", check_in=date(2026, 5, 1), check_out=None),
        UTC,
    )

    assert result == "confirmation_code"


@pytest.mark.unit
def test_match_tier_date_slack() -> None:
    """Test that both ends within the slack match, one end outside does not."""
    assert match_tier(booking(), fact(check_out=date(2026, 4, 7)), UTC, slack_days=1) == (
        "date_slack"
    )
    assert match_tier(booking(), fact(check_out=date(2026, 4, 8)), UTC, slack_days=1) is None
    assert match_tier(booking(), fact(check_out=date(2026, 4, 7)), UTC, slack_days=0) is None


@pytest.mark.unit
def test_match_tier_requires_both_fact_dates() -> None:
    """Test that a fact without checkout matches only by code."""
    assert match_tier(booking(), fact(check_out=None), UTC) is None


@pytest.mark.unit
def test_match_tier_uses_property_local_dates() -> None:
    """Test that booking timestamps are compared as local stay dates."""
    late_checkin = booking(
        check_in=datetime(2026, 4, 5, 2, 0, tzinfo=UTC),
        check_out=datetime(2026, 4, 7, 2, 0, tzinfo=UTC),
    )

    assert match_tier(late_checkin, fact(), ZoneInfo("America/New_York")) == "exact_dates"
    assert match_tier(late_checkin, fact(), UTC) == "date_slack"


@pytest.mark.unit
@pytest.mark.parametrize("zone", ["Pacific/Auckland", "Pacific/Kiritimati", "Pacific/Pago_Pago"])
def test_match_tier_all_day_stay_exact_in_any_offset(zone: str) -> None:
    """Test that all-day stays keep their local dates at extreme UTC offsets."""
    tz = ZoneInfo(zone)
    stay = booking(
        check_in=to_utc(date(2026, 6, 4), tz),
        check_out=to_utc(date(2026, 6, 6), tz),
    )

    assert match_tier(stay, fact(check_in=date(2026, 6, 4), check_out=date(2026, 6, 6)), tz) == (
        "exact_dates"
    )


@pytest.mark.unit
def test_match_tier_nameless_fact_needs_code() -> None:
    """Test that a fact without a guest name matches by code only."""
    nameless = fact(guest_name=None, confirmation_code="HMABC12345")

    assert match_tier(booking(), nameless, UTC) is None
    assert match_tier(booking(reservation_code="HMABC12345"), nameless, UTC) == (
        "confirmation_code"
    )


@pytest.mark.unit
def test_is_eligible() -> None:
    """Test that placeholders and never-enriched bookings are eligible."""
    assert is_eligible(booking())
    assert is_eligible(booking(guest_name="Jamie Lee"))
    assert not is_eligible(
        booking(guest_name="Jamie Lee", enriched_at=datetime(2026, 3, 2, tzinfo=UTC))
    )
    assert not is_eligible(booking(guest_name="Maria Direct", source_type="direct"))


@pytest.mark.unit
def test_candidate_order_prefers_tier_then_recency_then_completeness() -> None:
    """Test the deterministic ordering of competing pairs."""
    code = MatchCandidate(booking(), fact(id="f-code"), "confirmation_code")
    exact_complete = MatchCandidate(booking(), fact(id="f-full"), "exact_dates")
    exact_partial = MatchCandidate(booking(), fact(id="f-part", guest_count=None), "exact_dates")
    exact_newer = MatchCandidate(
        booking(),
        fact(id="f-new", extracted_at=datetime(2026, 3, 5, tzinfo=UTC)),
        "exact_dates",
    )
    newest_partial = MatchCandidate(
        booking(),
        fact(id="f-newest", guest_count=None, extracted_at=datetime(2026, 3, 9, tzinfo=UTC)),
        "exact_dates",
    )

    ordered = sorted(
        [exact_partial, exact_complete, code, exact_newer, newest_partial],
        key=MatchCandidate.sort_key,
    )

    assert [c.fact["id"] for c in ordered] == ["f-code", "f-newest", "f-new", "f-full", "f-part"]
