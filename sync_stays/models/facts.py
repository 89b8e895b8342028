from sqlalchemy import Column, Date, Integer, String, UniqueConstraint

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base, JSONType, UTCDateTime, new_id
from sync_stays.utils.datetime import utc_now


class ReservationFact(Base):
    """
    ORM model for reservation details extracted from one email message.

    Fields that could not be extracted stay NULL. Re-processing a message only
    adds or improves fields (see normalizers.facts.merge_fact); field_sources
    records which extraction rule produced each populated field so later runs
    can compare confidence.
    """

    __tablename__ = "reservation_facts"
    __table_args__ = (
        UniqueConstraint("connection_id", "source_message_id", name="uq_facts_connection_message"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_id)
    connection_id = Column(String(36), nullable=False, index=True)
    property_id = Column(String(36), nullable=True, index=True)
    source_message_id = Column(String, nullable=False)
    platform = Column(String, nullable=True)
    check_in = Column(Date, nullable=True)
    check_out = Column(Date, nullable=True)
    guest_name = Column(String, nullable=True)
    guest_count = Column(Integer, nullable=True)
    confirmation_code = Column(String, nullable=True)
    field_sources = Column(JSONType, nullable=False, default=dict)
    extracted_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
