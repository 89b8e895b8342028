from sqlalchemy import Column, String

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base, UTCDateTime, new_id
from sync_stays.utils.datetime import utc_now


class Property(Base):
    """
    ORM model for a short-term-rental property.

    A property owns its iCal feeds and its booking ledger. The timezone is used
    to turn timestamped calendar entries into local stay dates.
    """

    __tablename__ = "properties"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=new_id)
    workspace_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=True)
    timezone = Column(String, nullable=False, default="UTC")
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
