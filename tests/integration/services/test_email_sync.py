"""
Integration tests for email fact extraction, SAFE re-processing and the
enrichment pass that follows it.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable
from unittest.mock import Mock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine

from sync_stays.exceptions import LockDenied
from sync_stays.models.facts import ReservationFact
from sync_stays.schemas.messages import InboundMessage
from sync_stays.services.emails import reprocess_connection_messages, sync_connection_emails
from sync_stays.services.locks import sync_locks

UTC = timezone.utc
APR_4 = datetime(2026, 4, 4, 12, 0, tzinfo=UTC)
APR_6 = datetime(2026, 4, 6, 12, 0, tzinfo=UTC)
BODY = (
    "Check-in: Sat, Apr 4, 2026\n"
    "Checkout: Mon, Apr 6, 2026\n"
    "Guests: 2\n"
    "Confirmation code: HMABC12345\n"
)


def confirmation(
    message_id: str = "msg-1",
    subject: str = "Reservation confirmed - J. Lee arrives Apr 4",
    body: str = BODY,
) -> InboundMessage:
    return InboundMessage(
        message_id=message_id,
        subject=subject,
        body_text=body,
        sender="automated@airbnb.com",
        received_at=datetime(2026, 3, 1, 9, 30, tzinfo=UTC),
    )


def facts(engine: Engine, connection_id: str = "conn-1") -> list[dict]:
    stmt = select(ReservationFact.__table__).where(ReservationFact.connection_id == connection_id)
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(stmt).mappings().all()]


@pytest.fixture
def linked_property(make_property: Callable, link_connection: Callable) -> str:
    property_id = make_property()
    link_connection("conn-1", property_id)
    return property_id


@pytest.mark.integration
def test_email_sync_extracts_fact_and_enriches_booking(
    ledger_engine: Engine,
    linked_property: str,
    make_booking: Callable,
    fetch_bookings: Callable,
    fetch_runs: Callable,
) -> None:
    """Test that a confirmation becomes a fact and names the matching booking."""
    make_booking(linked_property, APR_4, APR_6)
    payout = InboundMessage(message_id="msg-2", subject="Your payout has been sent")

    summary = sync_connection_emails(ledger_engine, "conn-1", [confirmation(), payout])

    stored = facts(ledger_engine)
    booking = fetch_bookings(linked_property)[0]
    assert summary.status == "success"
    assert summary.messages_stored == 2
    assert summary.facts_created == 1
    assert summary.not_reservations == 1
    assert summary.matched == 1
    assert len(stored) == 1
    assert stored[0]["property_id"] == linked_property
    assert stored[0]["check_in"] == date(2026, 4, 4)
    assert stored[0]["confirmation_code"] == "HMABC12345"
    assert stored[0]["field_sources"]["guest_name"] == "subject_airbnb"
    assert booking["guest_name"] == "J. Lee"
    assert booking["guest_count"] == 2
    assert fetch_runs("email")[0]["status"] == "success"


@pytest.mark.integration
def test_reprocessing_same_message_is_safe(
    ledger_engine: Engine, linked_property: str
) -> None:
    """Test that re-processing never erases fields and only improves them."""
    sync_connection_emails(ledger_engine, "conn-1", [confirmation()])

    # Same message, edited: better name, guest count line gone
    edited = confirmation(
        subject="Reservation confirmed - Jamie Lee arrives Apr 4",
        body=BODY.replace("Guests: 2\n", ""),
    )
    summary = sync_connection_emails(ledger_engine, "conn-1", [edited], force=True)

    stored = facts(ledger_engine)
    assert summary.facts_updated == 1
    assert len(stored) == 1
    assert stored[0]["guest_name"] == "Jamie Lee"
    assert stored[0]["guest_count"] == 2
    assert stored[0]["check_out"] == date(2026, 4, 6)


@pytest.mark.integration
def test_declined_run_still_stores_messages(ledger_engine: Engine, linked_property: str) -> None:
    """Test that a debounced batch is stored and picked up by the next admitted run."""
    sync_connection_emails(ledger_engine, "conn-1", [confirmation("msg-1")])

    declined = sync_connection_emails(ledger_engine, "conn-1", [confirmation("msg-2")])
    assert declined.skipped
    assert declined.skip_reason == "recent_run"
    assert declined.messages_stored == 1
    assert len(facts(ledger_engine)) == 1

    later = sync_connection_emails(ledger_engine, "conn-1", [], force=True)

    assert later.facts_created == 1
    assert len(facts(ledger_engine)) == 2


@pytest.mark.integration
def test_locked_connection_is_skipped(ledger_engine: Engine, linked_property: str) -> None:
    """Test that a connection being processed elsewhere is not extracted twice."""
    sync_locks.acquire("connection:conn-1")

    summary = sync_connection_emails(ledger_engine, "conn-1", [confirmation()])

    assert summary.skipped
    assert summary.skip_reason == "locked"
    assert facts(ledger_engine) == []
    with pytest.raises(LockDenied):
        reprocess_connection_messages(ledger_engine, "conn-1")


@pytest.mark.integration
@patch("sync_stays.services.emails.extract_reservation")
def test_extraction_error_is_recorded_per_message(
    mock_extract: Mock, ledger_engine: Engine, linked_property: str, fetch_runs: Callable
) -> None:
    """Test that one failing message fails the run without raising."""
    mock_extract.side_effect = ValueError("unexpected layout")

    summary = sync_connection_emails(ledger_engine, "conn-1", [confirmation()])

    assert summary.status == "failure"
    assert summary.failures[0].item_id == "msg-1"
    assert fetch_runs("email")[0]["errors"] == 1


@pytest.mark.integration
def test_backfill_reprocesses_all_stored_messages(
    ledger_engine: Engine, make_property: Callable, link_connection: Callable
) -> None:
    """Test that a backfill fills facts for a connection linked to two properties."""
    first = make_property()
    second = make_property()
    link_connection("conn-1", first)
    link_connection("conn-1", second)
    sync_connection_emails(ledger_engine, "conn-1", [confirmation()])

    summary = reprocess_connection_messages(ledger_engine, "conn-1")

    stored = facts(ledger_engine)
    assert summary.messages_received == 1
    assert summary.facts_unchanged == 1
    assert len(stored) == 1
    assert stored[0]["property_id"] is None


@pytest.mark.integration
def test_confirmation_for_past_stay_stores_no_fact(
    ledger_engine: Engine, linked_property: str, fetch_runs: Callable
) -> None:
    """Test that a stay already begun when the email arrived yields no fact."""
    late = confirmation(
        body=BODY.replace("Apr 4, 2026", "Feb 20, 2026").replace("Apr 6, 2026", "Feb 22, 2026"),
        subject="Reservation confirmed - J. Lee",
    )

    summary = sync_connection_emails(ledger_engine, "conn-1", [late])

    assert summary.past_stays == 1
    assert summary.facts_created == 0
    assert facts(ledger_engine) == []
    assert fetch_runs("email")[0]["detail"]["past_stays"] == 1

    # Processed: an admitted re-run does not look at it again
    again = sync_connection_emails(ledger_engine, "conn-1", [], force=True)
    assert again.past_stays == 0


@pytest.mark.integration
def test_past_stay_gate_keeps_existing_fact(ledger_engine: Engine, linked_property: str) -> None:
    """Test that an already stored fact is still merged on reprocessing."""
    sync_connection_emails(ledger_engine, "conn-1", [confirmation()])

    summary = reprocess_connection_messages(ledger_engine, "conn-1")

    assert summary.past_stays == 0
    assert summary.facts_unchanged == 1
    assert len(facts(ledger_engine)) == 1
