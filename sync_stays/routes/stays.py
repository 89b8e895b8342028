from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine

from sync_stays.config import DRY_RUN
from sync_stays.db.readers.bookings import display_guest_name, enrichment_status, get_booking
from sync_stays.db.readers.properties import get_property
from sync_stays.db.writers.bookings import (
    clear_manual_override,
    create_manual_booking,
    set_manual_override,
)
from sync_stays.dependencies import get_db_engine
from sync_stays.exceptions import LockDenied, NotFoundError, ReconciliationConflict
from sync_stays.schemas.messages import EmailBatchPayload
from sync_stays.schemas.summaries import ManualBookingPayload, OverridePayload
from sync_stays.services.emails import sync_connection_emails
from sync_stays.services.sync import disable_feed, reset_property, sync_property
from sync_stays.utils.datetime import property_zone, to_utc

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/properties/{property_id}/sync")
def trigger_property_sync(
    property_id: str,
    feed_id: Optional[str] = Query(None, description="Sync only this feed"),
    force: bool = Query(False, description="Bypass the recent-run debounce"),
    dry_run: Optional[bool] = Query(None, description="Override DRY_RUN setting"),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Sync the calendar feeds of a property and return the run summary.

    Args:
        property_id: Property ID
        feed_id: Optional single feed to sync
        force: Bypass the recent-run debounce
        dry_run: Override DRY_RUN setting (optional)
        engine: Database engine (injected)

    Returns:
        dict: PropertySyncSummary
    """
    use_dry_run = DRY_RUN if dry_run is None else dry_run
    try:
        summary = sync_property(
            engine, property_id, feed_id, trigger="manual", force=force, dry_run=use_dry_run
        )
        return summary.model_dump()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("property_sync_request_failed", property_id=property_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/properties/{property_id}/reset")
def trigger_property_reset(
    property_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Soft-delete every calendar-derived booking of a property (manual bookings stay).

    Returns:
        dict: ResetSummary with the number of bookings deactivated
    """
    try:
        return reset_property(engine, property_id).model_dump()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("property_reset_failed", property_id=property_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/feeds/{feed_id}/disable")
def trigger_feed_disable(
    feed_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Deactivate a feed and soft-delete the bookings it produced.

    Returns:
        dict: ResetSummary with the cascade count
    """
    try:
        return disable_feed(engine, feed_id).model_dump()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LockDenied as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("feed_disable_failed", feed_id=feed_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/connections/{connection_id}/emails")
def submit_connection_emails(
    connection_id: str,
    payload: EmailBatchPayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Accept a batch of raw messages from the mail collaborator and extract facts.

    Args:
        connection_id: Mail connection ID
        payload: Messages plus the force flag
        engine: Database engine (injected)

    Returns:
        dict: EmailSyncSummary
    """
    try:
        summary = sync_connection_emails(
            engine, connection_id, payload.messages, trigger="manual", force=payload.force
        )
        return summary.model_dump()
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("email_sync_request_failed", connection_id=connection_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


def _booking_view(engine: Engine, booking_id: str) -> dict[str, Any]:
    with engine.connect() as conn:
        booking = get_booking(conn, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
    return {
        "booking_id": booking_id,
        "guest_name": display_guest_name(booking),
        "enrichment_status": enrichment_status(booking),
    }


@router.put("/bookings/{booking_id}/override")
def put_booking_override(
    booking_id: str,
    payload: OverridePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Set a manual guest override; automated enrichment never touches it again.

    Returns:
        dict: Displayed guest name and enrichment status after the change
    """
    try:
        with engine.begin() as conn:
            found = set_manual_override(
                conn, booking_id, guest_name=payload.guest_name, connection_id=payload.connection_id
            )
        if not found:
            raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
        logger.info("manual_override_set", booking_id=booking_id)
        return _booking_view(engine, booking_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("manual_override_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/bookings/{booking_id}/override")
def delete_booking_override(
    booking_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Clear a manual override so automated enrichment applies again.

    Returns:
        dict: Displayed guest name and enrichment status after the change
    """
    try:
        with engine.begin() as conn:
            found = clear_manual_override(conn, booking_id)
        if not found:
            raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
        logger.info("manual_override_cleared", booking_id=booking_id)
        return _booking_view(engine, booking_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("manual_override_clear_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/properties/{property_id}/bookings", status_code=status.HTTP_201_CREATED)
def post_manual_booking(
    property_id: str,
    payload: ManualBookingPayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Record a direct booking for a property.

    Dates are read in the property timezone. Direct bookings belong to no
    feed, survive resets and are never enriched from email.

    Returns:
        dict: Booking ID, displayed guest name and enrichment status
    """
    try:
        with engine.begin() as conn:
            prop = get_property(conn, property_id)
            if prop is None:
                raise HTTPException(status_code=404, detail=f"Property {property_id} not found")
            tz = property_zone(prop["timezone"])
            booking_id = create_manual_booking(
                conn,
                property_id=property_id,
                check_in=to_utc(payload.check_in, tz),
                check_out=to_utc(payload.check_out, tz),
                guest_name=payload.guest_name,
                guest_count=payload.guest_count,
            )
        logger.info("manual_booking_created", property_id=property_id, booking_id=booking_id)
        return _booking_view(engine, booking_id)
    except ReconciliationConflict as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("manual_booking_failed", property_id=property_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
