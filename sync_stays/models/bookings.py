# models/bookings.py

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, true

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base, UTCDateTime, new_id
from sync_stays.utils.datetime import utc_now

DIRECT_SOURCE = "direct"


class Booking(Base):
    """
    ORM model for the canonical booking ledger.

    One row per stay per property. Calendar-derived rows carry the originating
    feed and its event UID; manual rows have source_type "direct" and no feed.
    Rows are never hard-deleted: cancellation and resets flip is_active.

    Guest detail has three layers, highest precedence first:
    - manual_guest_name / manual_connection_id: set by an explicit user action,
      never touched by automation
    - guest_name / guest_count after enrichment (enriched_at set)
    - the provisional name derived from the event summary
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_feed_uid", "source_feed_id", "external_uid"),
        Index("ix_bookings_property_stay", "property_id", "check_in", "check_out"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_id)
    property_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_uid = Column(String, nullable=True)  # Feed VEVENT UID, NULL for legacy rows
    source_type = Column(String, nullable=False, default=DIRECT_SOURCE)
    source_feed_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.ical_feeds.id", ondelete="SET NULL"),
        nullable=True,
    )
    check_in = Column(UTCDateTime, nullable=False)
    check_out = Column(UTCDateTime, nullable=False)  # Exclusive
    guest_name = Column(String, nullable=True)
    guest_count = Column(Integer, nullable=True)
    reservation_code = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    manual_guest_name = Column(String, nullable=True)
    manual_connection_id = Column(String(36), nullable=True)

    enriched_at = Column(UTCDateTime, nullable=True)
    enrichment_fact_id = Column(String(36), nullable=True)
    enrichment_match = Column(String, nullable=True)  # confirmation_code | exact_dates | date_slack

    last_synced_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
