"""
Integration tests for the sync trigger and manual override endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Generator
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from sync_stays.dependencies import get_db_engine
from sync_stays.main import app
from sync_stays.services.locks import sync_locks

UTC = timezone.utc
CALENDAR = (
    "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//Test//EN\r\n"
    "BEGIN:VEVENT\r\nUID:A\r\nSUMMARY:Reserved\r\n"
    "DTSTART;VALUE=DATE:20260404\r\nDTEND;VALUE=DATE:20260406\r\nEND:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


@pytest.fixture
def client(ledger_engine: Engine) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_db_engine] = lambda: ledger_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def booking_id(make_property: Callable, make_booking: Callable) -> str:
    return make_booking(
        make_property(),
        datetime(2026, 4, 4, 12, tzinfo=UTC),
        datetime(2026, 4, 6, 12, tzinfo=UTC),
    )


@pytest.mark.integration
@patch("sync_stays.pollers.calendars.fetch_calendar")
def test_trigger_property_sync(
    mock_fetch: Mock, client: TestClient, make_property: Callable, make_feed: Callable
) -> None:
    """Test that a manual sync returns the run summary."""
    property_id = make_property()
    make_feed(property_id)
    mock_fetch.return_value = (CALENDAR, 200)

    response = client.post(f"/stays/properties/{property_id}/sync", params={"force": "true"})

    assert response.status_code == 200
    data = response.json()
    assert data["property_id"] == property_id
    assert data["created"] == 1
    assert data["status"] == "success"
    assert data["dry_run"] is False


@pytest.mark.integration
def test_trigger_property_sync_unknown_property(client: TestClient) -> None:
    """Test that syncing a missing property returns 404."""
    response = client.post("/stays/properties/missing/sync")

    assert response.status_code == 404


@pytest.mark.integration
def test_trigger_property_reset(client: TestClient, make_property: Callable) -> None:
    """Test that a reset reports the deactivated count."""
    property_id = make_property()

    response = client.post(f"/stays/properties/{property_id}/reset")

    assert response.status_code == 200
    assert response.json() == {
        "scope_type": "property",
        "scope_id": property_id,
        "deactivated": 0,
    }


@pytest.mark.integration
def test_trigger_feed_disable_conflict_while_locked(
    client: TestClient, make_property: Callable, make_feed: Callable
) -> None:
    """Test that disabling a feed mid-sync returns 409 and a free feed is disabled."""
    feed = make_feed(make_property())
    sync_locks.acquire(f"feed:{feed['id']}")

    locked = client.post(f"/stays/feeds/{feed['id']}/disable")
    sync_locks.release(f"feed:{feed['id']}")
    freed = client.post(f"/stays/feeds/{feed['id']}/disable")

    assert locked.status_code == 409
    assert freed.status_code == 200
    assert freed.json()["scope_type"] == "feed"
    assert client.post("/stays/feeds/missing/disable").status_code == 404


@pytest.mark.integration
def test_submit_connection_emails(
    client: TestClient, make_property: Callable, link_connection: Callable
) -> None:
    """Test that a posted batch is stored and extracted."""
    link_connection("conn-1", make_property())
    payload = {
        "messages": [
            {
                "message_id": "msg-1",
                "subject": "Reservation confirmed - J. Lee arrives Apr 4",
                "body_text": "Check-in: Apr 4, 2026\nCheckout: Apr 6, 2026\nGuests: 2",
                "sender": "automated@airbnb.com",
                "received_at": "2026-03-01T09:30:00Z",
            }
        ]
    }

    response = client.post("/stays/connections/conn-1/emails", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["messages_stored"] == 1
    assert data["facts_created"] == 1


@pytest.mark.integration
def test_manual_override_set_and_cleared(client: TestClient, booking_id: str) -> None:
    """Test the override lifecycle through the API."""
    put = client.put(f"/stays/bookings/{booking_id}/override", json={"guest_name": "Sam Owner"})
    delete = client.delete(f"/stays/bookings/{booking_id}/override")

    assert put.status_code == 200
    assert put.json() == {
        "booking_id": booking_id,
        "guest_name": "Sam Owner",
        "enrichment_status": "overridden",
    }
    assert delete.status_code == 200
    assert delete.json()["guest_name"] == "Reserved"
    assert delete.json()["enrichment_status"] == "unmatched"


@pytest.mark.integration
def test_manual_override_validation(client: TestClient, booking_id: str) -> None:
    """Test that an empty override is rejected and unknown bookings are 404."""
    empty = client.put(f"/stays/bookings/{booking_id}/override", json={})
    missing = client.put("/stays/bookings/missing/override", json={"guest_name": "Sam Owner"})

    assert empty.status_code == 422
    assert missing.status_code == 404
    assert client.delete("/stays/bookings/missing/override").status_code == 404


@pytest.mark.integration
def test_post_manual_booking(
    client: TestClient, make_property: Callable, fetch_bookings: Callable
) -> None:
    """Test that a direct booking is stored at local noon in the property timezone."""
    property_id = make_property("Pacific/Auckland")
    payload = {
        "check_in": "2026-04-04",
        "check_out": "2026-04-06",
        "guest_name": "Maria Direct",
        "guest_count": 3,
    }

    response = client.post(f"/stays/properties/{property_id}/bookings", json=payload)

    assert response.status_code == 201
    data = response.json()
    assert data["guest_name"] == "Maria Direct"
    assert data["enrichment_status"] == "unmatched"
    stored = fetch_bookings(property_id)
    assert len(stored) == 1
    assert stored[0]["id"] == data["booking_id"]
    assert stored[0]["source_type"] == "direct"
    assert stored[0]["feed_id"] is None
    assert stored[0]["guest_count"] == 3
    # Noon in Auckland (UTC+13 in April before DST ends) is 23:00 UTC the day before
    assert stored[0]["check_in"] == datetime(2026, 4, 3, 23, 0, tzinfo=UTC)


@pytest.mark.integration
def test_post_manual_booking_rejected(client: TestClient, make_property: Callable) -> None:
    """Test that an unknown property is 404 and an inverted stay is 422."""
    payload = {"check_in": "2026-04-06", "check_out": "2026-04-04", "guest_name": "Maria Direct"}

    missing = client.post("/stays/properties/missing/bookings", json=payload)
    inverted = client.post(f"/stays/properties/{make_property()}/bookings", json=payload)
    nameless = client.post(
        f"/stays/properties/{make_property()}/bookings",
        json={"check_in": "2026-04-04", "check_out": "2026-04-06", "guest_name": ""},
    )

    assert missing.status_code == 404
    assert inverted.status_code == 422
    assert nameless.status_code == 422
