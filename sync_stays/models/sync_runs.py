from sqlalchemy import Column, Index, Integer, String

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base, JSONType, UTCDateTime, new_id
from sync_stays.utils.datetime import utc_now


class SyncRun(Base):
    """
    Append-only audit row for one calendar sync, email extraction, enrichment
    or reset run.

    Rows are written once and never updated. The soft lock reads the newest
    successful row per (run_type, scope_id) to debounce overlapping triggers.
    """

    __tablename__ = "sync_runs"
    __table_args__ = (
        Index("ix_sync_runs_scope", "run_type", "scope_id", "status", "finished_at"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_id)
    run_type = Column(String, nullable=False)  # calendar | email | enrichment | reset | feed_disable
    scope_type = Column(String, nullable=False)  # property | feed | connection
    scope_id = Column(String(36), nullable=False)
    trigger = Column(String, nullable=False, default="manual")  # manual | scheduled
    status = Column(String, nullable=False)  # success | partial | failure
    events_found = Column(Integer, nullable=False, default=0)
    processed = Column(Integer, nullable=False, default=0)
    matched = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)
    detail = Column(JSONType, nullable=False, default=dict)
    started_at = Column(UTCDateTime, nullable=False)
    finished_at = Column(UTCDateTime, nullable=False, default=utc_now)
