from sqlalchemy import Column, ForeignKey, String

from sync_stays.config import SCHEMA
from sync_stays.models.base import Base


class ConnectionProperty(Base):
    """
    Link between a mail connection and a property it receives confirmations for.

    The mail connection itself (credentials, labels) belongs to the mail
    collaborator; only the association is needed to scope reservation facts.
    """

    __tablename__ = "connection_properties"
    __table_args__ = {"schema": SCHEMA}

    connection_id = Column(String(36), primary_key=True)
    property_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
