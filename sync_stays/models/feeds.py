from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, true

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base, UTCDateTime, new_id
from sync_stays.utils.datetime import utc_now


class Feed(Base):
    """
    ORM model for a published iCal feed attached to one property.

    source_type is the platform tag copied onto every booking the feed produces.
    The last_* columns describe the most recent sync attempt for operators.
    Deactivating a feed soft-deletes the bookings it produced.
    """

    __tablename__ = "ical_feeds"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_id)
    property_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ical_url = Column(Text, nullable=False)
    name = Column(String, nullable=True)  # Human label, e.g. "Airbnb - Loft"
    source_type = Column(String, nullable=False, default="other")
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    last_synced_at = Column(UTCDateTime, nullable=True)
    last_sync_status = Column(String, nullable=True)  # success | error
    last_error = Column(Text, nullable=True)
    last_http_status = Column(Integer, nullable=True)
    last_event_count = Column(Integer, nullable=True)
    last_booking_count = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
