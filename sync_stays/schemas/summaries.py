from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field


class ItemFailure(BaseModel):
    """A per-feed or per-message failure collected during a run."""

    item_id: str
    error: str
    http_status: Optional[int] = None


class PropertySyncSummary(BaseModel):
    """Result of syncing the calendar feeds of one property."""

    property_id: str
    status: str = "success"
    skipped: bool = False
    skip_reason: Optional[str] = None
    dry_run: bool = False
    feeds_synced: int = 0
    feeds_skipped: int = 0
    events_found: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    deactivated: int = 0
    suppressed: int = 0
    matched: int = 0
    failures: list[ItemFailure] = Field(default_factory=list)


class EmailSyncSummary(BaseModel):
    """Result of extracting facts from one connection's messages."""

    connection_id: str
    status: str = "success"
    skipped: bool = False
    skip_reason: Optional[str] = None
    messages_received: int = 0
    messages_stored: int = 0
    facts_created: int = 0
    facts_updated: int = 0
    facts_unchanged: int = 0
    not_reservations: int = 0
    past_stays: int = 0
    matched: int = 0
    failures: list[ItemFailure] = Field(default_factory=list)


class EnrichmentSummary(BaseModel):
    """Result of one Enrichment Matcher pass over a property."""

    property_id: str
    eligible: int = 0
    matched: int = 0
    ambiguous: int = 0
    merges: list[dict[str, Any]] = Field(default_factory=list)
    missing_from_calendar: list[dict[str, Any]] = Field(default_factory=list)


class ResetSummary(BaseModel):
    """Result of a property reset or feed disable cascade."""

    scope_type: str
    scope_id: str
    deactivated: int = 0


class OverridePayload(BaseModel):
    """Request body for a manual guest override on a booking."""

    guest_name: Optional[str] = Field(None, description="Guest name shown instead of automation")
    connection_id: Optional[str] = Field(None, description="Mail connection the user picked")


class ManualBookingPayload(BaseModel):
    """Request body for a direct booking typed in by a user."""

    check_in: date = Field(..., description="Arrival date in the property timezone")
    check_out: date = Field(..., description="Departure date in the property timezone")
    guest_name: str = Field(..., min_length=1, description="Guest name as entered")
    guest_count: Optional[int] = Field(None, ge=1, description="Number of guests")
