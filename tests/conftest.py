"""
Shared fixtures: an in-memory SQLite ledger and row factories.

DATABASE_URL must be set before sync_stays.config is imported anywhere.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime  # noqa: E402
from typing import Any, Callable, Generator, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine, insert, select  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sync_stays.db.readers.properties import get_feed  # noqa: E402
from sync_stays.models.base import Base, new_id  # noqa: E402
from sync_stays.models.bookings import Booking  # noqa: E402
from sync_stays.models.connections import ConnectionProperty  # noqa: E402
from sync_stays.models.facts import ReservationFact  # noqa: E402
from sync_stays.models.feeds import Feed  # noqa: E402
from sync_stays.models.messages import MailMessage  # noqa: E402,F401
from sync_stays.models.properties import Property  # noqa: E402
from sync_stays.models.sync_runs import SyncRun  # noqa: E402
from sync_stays.services.locks import sync_locks  # noqa: E402
from sync_stays.utils.datetime import utc_now  # noqa: E402


@pytest.fixture
def ledger_engine() -> Generator[Engine, None, None]:
    """
    Fresh in-memory ledger per test.

    StaticPool keeps one connection so every engine.connect() sees the same
    database; the "stays" schema is translated away for SQLite.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    ).execution_options(schema_translate_map={"stays": None})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def release_sync_locks() -> Generator[None, None, None]:
    """The in-process lock table is a module singleton; start every test empty."""
    for key in list(sync_locks._acquired_at):
        sync_locks.release(key)
    yield
    for key in list(sync_locks._acquired_at):
        sync_locks.release(key)


@pytest.fixture
def make_property(ledger_engine: Engine) -> Callable[..., str]:
    """Factory: insert a property and return its ID."""

    def _make(timezone_name: str = "UTC") -> str:
        property_id = new_id()
        with ledger_engine.begin() as conn:
            conn.execute(
                insert(Property).values(
                    id=property_id,
                    workspace_id="ws-test",
                    name="Test Loft",
                    timezone=timezone_name,
                )
            )
        return property_id

    return _make


@pytest.fixture
def make_feed(ledger_engine: Engine) -> Callable[..., dict[str, Any]]:
    """Factory: insert an iCal feed for a property and return the feed row."""

    def _make(
        property_id: str,
        source_type: str = "airbnb",
        ical_url: Optional[str] = None,
        is_active: bool = True,
    ) -> dict[str, Any]:
        feed_id = new_id()
        with ledger_engine.begin() as conn:
            conn.execute(
                insert(Feed).values(
                    id=feed_id,
                    property_id=property_id,
                    ical_url=ical_url or f"https://calendar.example.com/{feed_id}.ics",
                    source_type=source_type,
                    is_active=is_active,
                )
            )
            return get_feed(conn, feed_id)  # type: ignore[return-value]

    return _make


@pytest.fixture
def make_booking(ledger_engine: Engine) -> Callable[..., str]:
    """Factory: insert a booking row directly and return its ID."""

    def _make(
        property_id: str,
        check_in: datetime,
        check_out: datetime,
        guest_name: Optional[str] = "Reserved",
        feed: Optional[dict[str, Any]] = None,
        external_uid: Optional[str] = None,
        source_type: str = "airbnb",
        **extra: Any,
    ) -> str:
        booking_id = new_id()
        now = utc_now()
        with ledger_engine.begin() as conn:
            conn.execute(
                insert(Booking).values(
                    id=booking_id,
                    property_id=property_id,
                    external_uid=external_uid,
                    source_type=feed["source_type"] if feed else source_type,
                    source_feed_id=feed["id"] if feed else None,
                    check_in=check_in,
                    check_out=check_out,
                    guest_name=guest_name,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                    **extra,
                )
            )
        return booking_id

    return _make


@pytest.fixture
def link_connection(ledger_engine: Engine) -> Callable[[str, str], None]:
    """Factory: link a mail connection to a property."""

    def _link(connection_id: str, property_id: str) -> None:
        with ledger_engine.begin() as conn:
            conn.execute(
                insert(ConnectionProperty).values(
                    connection_id=connection_id, property_id=property_id
                )
            )

    return _link


@pytest.fixture
def make_fact(ledger_engine: Engine) -> Callable[..., str]:
    """Factory: insert a reservation fact and return its ID."""

    def _make(
        connection_id: str,
        property_id: Optional[str] = None,
        guest_name: Optional[str] = "J. Lee",
        guest_count: Optional[int] = 2,
        check_in: Optional[date] = None,
        check_out: Optional[date] = None,
        confirmation_code: Optional[str] = None,
        extracted_at: Optional[datetime] = None,
    ) -> str:
        fact_id = new_id()
        now = extracted_at or utc_now()
        with ledger_engine.begin() as conn:
            conn.execute(
                insert(ReservationFact).values(
                    id=fact_id,
                    connection_id=connection_id,
                    property_id=property_id,
                    source_message_id=f"msg-{fact_id[:8]}",
                    platform="airbnb",
                    check_in=check_in,
                    check_out=check_out,
                    guest_name=guest_name,
                    guest_count=guest_count,
                    confirmation_code=confirmation_code,
                    field_sources={},
                    extracted_at=now,
                    updated_at=now,
                )
            )
        return fact_id

    return _make


@pytest.fixture
def fetch_bookings(ledger_engine: Engine) -> Callable[[str], list[dict[str, Any]]]:
    """Read every booking of a property, active or not, in insertion order."""

    def _fetch(property_id: str) -> list[dict[str, Any]]:
        stmt = (
            select(Booking.__table__)
            .where(Booking.property_id == property_id)
            .order_by(Booking.created_at, Booking.id)
        )
        with ledger_engine.connect() as conn:
            return [dict(row) for row in conn.execute(stmt).mappings().all()]

    return _fetch


@pytest.fixture
def fetch_runs(ledger_engine: Engine) -> Callable[..., list[dict[str, Any]]]:
    """Read audit rows, optionally filtered by run_type."""

    def _fetch(run_type: Optional[str] = None) -> list[dict[str, Any]]:
        stmt = select(SyncRun.__table__).order_by(SyncRun.finished_at)
        if run_type:
            stmt = stmt.where(SyncRun.run_type == run_type)
        with ledger_engine.connect() as conn:
            return [dict(row) for row in conn.execute(stmt).mappings().all()]

    return _fetch
