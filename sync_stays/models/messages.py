from sqlalchemy import Column, String, Text, UniqueConstraint

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base, UTCDateTime, new_id
from sync_stays.utils.datetime import utc_now


class MailMessage(Base):
    """
    ORM model for raw confirmation emails handed over by the mail collaborator.

    Messages are kept so extraction can be re-run (SAFE backfill) without
    going back to the mailbox. content_hash lets the upsert skip rewrites of
    identical content.
    """

    __tablename__ = "mail_messages"
    __table_args__ = (
        UniqueConstraint("connection_id", "message_id", name="uq_mail_connection_message"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_id)
    connection_id = Column(String(36), nullable=False, index=True)
    message_id = Column(String, nullable=False)
    sender = Column(String, nullable=True)
    subject = Column(Text, nullable=True)
    body_text = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)
    content_hash = Column(String(64), nullable=False)
    received_at = Column(UTCDateTime, nullable=True)
    processed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
