"""
Unit tests for the SAFE merge of re-extracted reservation facts.
"""

from __future__ import annotations

from datetime import date

import pytest

from sync_stays.normalizers.facts import field_confidence, merge_fact, merge_field, name_quality
from sync_stays.schemas.messages import ExtractedFact


def stored_fact(**overrides: object) -> dict:
    row: dict = {
        "id": "fact-1",
        "platform": "airbnb",
        "check_in": date(2026, 4, 4),
        "check_out": date(2026, 4, 6),
        "guest_name": "J. Lee",
        "guest_count": 2,
        "confirmation_code": "HMABC12345",
        "field_sources": {
            "platform": "airbnb",
            "check_in": "body_checkin_anchor",
            "check_out": "body_checkout_anchor",
            "guest_name": "subject_airbnb",
            "guest_count": "guests_label",
            "confirmation_code": "body_code_label",
        },
    }
    row.update(overrides)
    return row


@pytest.mark.unit
def test_name_quality_prefers_full_names() -> None:
    """Test that full names outrank initials and single tokens."""
    assert name_quality("Jamie Lee") > name_quality("J. Lee")
    assert name_quality("Jamie Lee") > name_quality("Jamie")
    assert name_quality("J. Lee") > name_quality("Reserved")


@pytest.mark.unit
def test_field_confidence_ranks_unknown_rule_lowest() -> None:
    """Test that values without a recorded rule lose to any known rule."""
    assert field_confidence("guest_count", 2, "occupancy") > field_confidence(
        "guest_count", 2, None
    )
    assert field_confidence("guest_count", 2, "guests_label") > field_confidence(
        "guest_count", 2, "occupancy"
    )


@pytest.mark.unit
def test_merge_field_empty_never_beats_populated() -> None:
    """Test that an empty re-extraction keeps the stored value."""
    assert merge_field("guest_count", 2, "guests_label", None, None) == (2, "guests_label", False)
    assert merge_field("guest_name", "Jamie Lee", "subject_airbnb", "  ", "body_name") == (
        "Jamie Lee",
        "subject_airbnb",
        False,
    )


@pytest.mark.unit
def test_merge_field_fills_empty_stored_value() -> None:
    """Test that a new value fills a field that was never extracted."""
    assert merge_field("guest_count", None, None, 3, "n_guests") == (3, "n_guests", True)


@pytest.mark.unit
def test_merge_field_tie_keeps_stored_value() -> None:
    """Test that a different value with equal confidence does not replace the stored one."""
    assert merge_field("guest_count", 2, "guests_label", 4, "guests_label") == (
        2,
        "guests_label",
        False,
    )


@pytest.mark.unit
def test_merge_field_lower_confidence_does_not_replace() -> None:
    """Test that a value from a weaker rule is rejected."""
    assert merge_field("guest_count", 2, "guests_label", 5, "occupancy")[2] is False


@pytest.mark.unit
def test_merge_fact_improves_name_and_keeps_everything_else() -> None:
    """Test that a better name wins while missing fields are left alone."""
    extracted = ExtractedFact(
        guest_name="Jamie Lee",
        check_in=date(2026, 4, 4),
        field_sources={"guest_name": "subject_airbnb", "check_in": "body_checkin_anchor"},
    )

    merge = merge_fact(stored_fact(), extracted)

    assert merge.changed
    assert merge.improved_fields == ["guest_name"]
    assert merge.changes["guest_name"] == "Jamie Lee"
    assert merge.changes["field_sources"]["guest_name"] == "subject_airbnb"
    assert "guest_count" not in merge.changes
    assert "check_out" not in merge.changes


@pytest.mark.unit
def test_merge_fact_never_downgrades_any_field() -> None:
    """Test that a re-extraction with every field weaker or empty changes nothing."""
    extracted = ExtractedFact(
        guest_name="J Lee",
        guest_count=None,
        check_in=None,
        field_sources={"guest_name": "body_name"},
    )

    merge = merge_fact(stored_fact(guest_name="Jamie Lee"), extracted)

    assert not merge.changed
    assert merge.changes == {}


@pytest.mark.unit
def test_merge_fact_fills_legacy_row_without_sources() -> None:
    """Test that a row with no field_sources gains fields and records their rules."""
    existing = stored_fact(guest_count=None, field_sources=None)
    extracted = ExtractedFact(guest_count=2, field_sources={"guest_count": "guests_label"})

    merge = merge_fact(existing, extracted)

    assert merge.changes["guest_count"] == 2
    assert merge.changes["field_sources"] == {"guest_count": "guests_label"}


@pytest.mark.unit
def test_merge_fact_never_inverts_stay_dates() -> None:
    """Test that a checkout filled in before the stored check-in is dropped."""
    existing = stored_fact(check_out=None, field_sources={"check_in": "body_checkin_anchor"})
    extracted = ExtractedFact(
        check_out=date(2026, 4, 3),
        guest_count=3,
        field_sources={"check_out": "body_checkout_anchor", "guest_count": "guests_label"},
    )

    merge = merge_fact(existing, extracted)

    assert "check_out" not in merge.changes
    assert merge.improved_fields == ["guest_count"]
    assert merge.changes["field_sources"] == {
        "check_in": "body_checkin_anchor",
        "guest_count": "guests_label",
    }


@pytest.mark.unit
def test_merge_fact_keeps_stored_checkin_when_new_one_inverts_pair() -> None:
    """Test that an improved check-in after the stored checkout is not applied."""
    existing = stored_fact(field_sources={"check_out": "body_checkout_anchor"})
    extracted = ExtractedFact(
        check_in=date(2026, 4, 8), field_sources={"check_in": "body_checkin_anchor"}
    )

    merge = merge_fact(existing, extracted)

    assert not merge.changed
    assert merge.changes == {}
