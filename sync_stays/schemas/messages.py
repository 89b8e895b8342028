from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """
    Raw message handed over by the mail collaborator for one connection.
    """

    message_id: str = Field(..., description="Stable provider message identifier")
    subject: str = ""
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    sender: Optional[str] = None
    received_at: Optional[datetime] = None


class ExtractedFact(BaseModel):
    """
    Fields extracted from one reservation email.

    Every field is optional: a field that could not be extracted stays None.
    field_sources maps each populated field to the name of the rule that
    produced it.
    """

    platform: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    guest_name: Optional[str] = None
    guest_count: Optional[int] = None
    confirmation_code: Optional[str] = None
    field_sources: dict[str, str] = Field(default_factory=dict)

    def is_usable(self) -> bool:
        """A fact is worth storing once it carries a check-in or a confirmation code."""
        return self.check_in is not None or self.confirmation_code is not None


class EmailBatchPayload(BaseModel):
    """Request body for submitting a batch of messages for one connection."""

    messages: list[InboundMessage] = Field(default_factory=list)
    force: bool = Field(False, description="Bypass the recent-run debounce")
