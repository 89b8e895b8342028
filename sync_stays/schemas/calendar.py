from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, Field


class CalendarEvent(BaseModel):
    """
    One VEVENT parsed from an iCal document.

    start/end are dates for all-day entries and datetimes (possibly naive)
    for timestamped ones; normalization to UTC happens in the booking
    normalizer, which knows the property timezone.
    """

    uid: str = Field(..., description="Feed-provided UID, or a synthetic hash when absent")
    summary: str = Field("", description="Event SUMMARY, empty when missing")
    description: Optional[str] = Field(None, description="Event DESCRIPTION")
    start: Union[datetime, date]
    end: Union[datetime, date]
    all_day: bool = False


class BookingCandidate(BaseModel):
    """
    Provisional booking derived from one calendar event, not yet in the ledger.
    """

    property_id: str
    source_feed_id: str
    source_type: str
    external_uid: str
    check_in: datetime = Field(..., description="Aware UTC check-in")
    check_out: datetime = Field(..., description="Aware UTC check-out (exclusive)")
    guest_name: str = Field(..., description="Provisional name, or the placeholder")
    is_placeholder: bool
    reservation_code: Optional[str] = None
