"""Property-level calendar sync orchestrator and reset operations."""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from sync_stays.db.readers.bookings import list_active_feed_bookings
from sync_stays.db.readers.properties import (
    get_feed,
    get_property,
    list_active_feeds,
    list_property_ids,
)
from sync_stays.db.writers.bookings import (
    deactivate_feed_bookings,
    reconcile_feed,
    reset_property_bookings,
)
from sync_stays.db.writers.feeds import record_feed_status, set_feed_active
from sync_stays.db.writers.sync_runs import record_run
from sync_stays.exceptions import NotFoundError
from sync_stays.normalizers.bookings import normalize_events
from sync_stays.pollers.calendars import FeedPollResult, poll_property_feeds
from sync_stays.schemas.summaries import ItemFailure, PropertySyncSummary, ResetSummary
from sync_stays.services.enrichment import enrich_property
from sync_stays.services.locks import should_run, sync_locks
from sync_stays.utils.datetime import property_zone, utc_now

logger = structlog.get_logger(__name__)


@contextmanager
def ledger_transaction(engine: Engine, dry_run: bool = False) -> Iterator[Connection]:
    """
    Transaction that commits on success, or always rolls back in dry-run mode.

    Args:
        engine: SQLAlchemy Engine
        dry_run: If True, discard every write made inside the block
    """
    with engine.connect() as conn:
        trans = conn.begin()
        try:
            yield conn
        except Exception:
            trans.rollback()
            raise
        if dry_run:
            trans.rollback()
        else:
            trans.commit()


def _run_status(attempted: int, failed: int, failures: int) -> str:
    if attempted and failed == attempted:
        return "failure"
    if failures:
        return "partial"
    return "success"


def _reconcile_result(
    engine: Engine,
    feed: dict[str, Any],
    result: FeedPollResult,
    summary: PropertySyncSummary,
    tz: Any,
    now: datetime,
    dry_run: bool,
) -> None:
    """Write one feed's poll result into the ledger in its own transaction."""
    with ledger_transaction(engine, dry_run=dry_run) as conn:
        if not result.ok:
            summary.failures.append(
                ItemFailure(item_id=feed["id"], error=str(result.error), http_status=result.http_status)
            )
            record_feed_status(
                conn,
                feed["id"],
                status="error",
                now=now,
                error=str(result.error),
                http_status=result.http_status,
            )
            return

        candidates = normalize_events(result.events, feed, tz)
        reconciled = reconcile_feed(conn, feed, candidates, now)

        summary.feeds_synced += 1
        summary.events_found += len(result.events)
        summary.created += reconciled.created
        summary.updated += reconciled.updated
        summary.unchanged += reconciled.unchanged
        summary.deactivated += reconciled.deactivated
        summary.suppressed += reconciled.suppressed
        for conflict in reconciled.conflicts:
            summary.failures.append(
                ItemFailure(item_id=f"{feed['id']}:{conflict.external_uid}", error=str(conflict))
            )

        record_feed_status(
            conn,
            feed["id"],
            status="success",
            now=now,
            http_status=result.http_status,
            event_count=len(result.events),
            booking_count=len(list_active_feed_bookings(conn, feed["id"])),
        )


def sync_property(
    engine: Engine,
    property_id: str,
    feed_id: Optional[str] = None,
    *,
    trigger: str = "manual",
    force: bool = False,
    dry_run: bool = False,
) -> PropertySyncSummary:
    """
    Sync the calendar feeds of one property into its booking ledger.

    Feeds are fetched with bounded parallelism, then reconciled one feed per
    transaction on the calling thread. A failing feed is recorded in the
    summary and on the feed row; sibling feeds continue. Enrichment runs for
    the property afterwards so new placeholder bookings pick up stored facts.

    Args:
        engine: SQLAlchemy Engine
        property_id: Property ID
        feed_id: Restrict the run to one feed of the property
        trigger: manual or scheduled
        force: Bypass the recent-run debounce
        dry_run: Fetch and reconcile, then roll every write back

    Returns:
        PropertySyncSummary: Counts, per-feed failures and the run status

    Raises:
        NotFoundError: If the property (or the requested feed) does not exist
        SQLAlchemyError: If the ledger store cannot be reached
    """
    log = logger.bind(property_id=property_id, feed_id=feed_id, trigger=trigger)
    started_at = utc_now()
    summary = PropertySyncSummary(property_id=property_id, dry_run=dry_run)
    scope_type, scope_id = ("feed", feed_id) if feed_id else ("property", property_id)

    with engine.connect() as conn:
        prop = get_property(conn, property_id)
        if prop is None:
            raise NotFoundError(f"Property {property_id} not found")
        if feed_id:
            feed = get_feed(conn, feed_id)
            if feed is None or feed["property_id"] != property_id or not feed["is_active"]:
                raise NotFoundError(f"Active feed {feed_id} not found for property {property_id}")
            feeds = [feed]
        else:
            feeds = list_active_feeds(conn, property_id)

    if not force:
        with engine.connect() as conn:
            admitted = should_run(conn, "calendar", scope_id)
        if not admitted:
            summary.skipped = True
            summary.skip_reason = "recent_run"
            log.info("property_sync_skipped", reason="recent_run")
            return summary

    locked: list[dict[str, Any]] = []
    for feed in feeds:
        if sync_locks.acquire(f"feed:{feed['id']}"):
            locked.append(feed)
        else:
            summary.feeds_skipped += 1
            log.info("feed_sync_skipped", skipped_feed_id=feed["id"], reason="locked")

    if feeds and not locked:
        summary.skipped = True
        summary.skip_reason = "locked"
        return summary

    log.info("property_sync_started", feeds=len(locked), dry_run=dry_run)
    tz = property_zone(prop["timezone"])
    now = utc_now()

    try:
        results = poll_property_feeds(locked)
        for feed, result in zip(locked, results):
            _reconcile_result(engine, feed, result, summary, tz, now, dry_run)
    except Exception as e:
        log.exception("property_sync_failed", error=str(e))
        raise
    finally:
        for feed in locked:
            sync_locks.release(f"feed:{feed['id']}")

    failed_feeds = len(locked) - summary.feeds_synced
    summary.status = _run_status(len(locked), failed_feeds, len(summary.failures))

    with ledger_transaction(engine, dry_run=dry_run) as conn:
        enrichment = enrich_property(conn, property_id, trigger=trigger, now=now)
        summary.matched = enrichment.matched
        record_run(
            conn,
            run_type="calendar",
            scope_type=scope_type,
            scope_id=scope_id,
            trigger=trigger,
            status=summary.status,
            started_at=started_at,
            events_found=summary.events_found,
            processed=summary.created + summary.updated + summary.unchanged + summary.suppressed,
            matched=summary.matched,
            errors=len(summary.failures),
            detail={
                "created": summary.created,
                "updated": summary.updated,
                "deactivated": summary.deactivated,
                "suppressed": summary.suppressed,
                "feeds_skipped": summary.feeds_skipped,
                "failures": [failure.model_dump() for failure in summary.failures],
            },
        )

    log.info(
        "property_sync_completed",
        status=summary.status,
        feeds_synced=summary.feeds_synced,
        events_found=summary.events_found,
        created=summary.created,
        updated=summary.updated,
        deactivated=summary.deactivated,
        suppressed=summary.suppressed,
        matched=summary.matched,
        failures=len(summary.failures),
    )
    return summary


def reset_property(engine: Engine, property_id: str, *, trigger: str = "manual") -> ResetSummary:
    """
    Soft-delete every calendar-derived booking of a property.

    Direct (manual) bookings are preserved. Idempotent; a repeated reset
    reports zero rows.

    Args:
        engine: SQLAlchemy Engine
        property_id: Property ID
        trigger: manual or scheduled

    Returns:
        ResetSummary: Number of bookings soft-deleted

    Raises:
        NotFoundError: If the property does not exist
    """
    started_at = utc_now()
    with engine.begin() as conn:
        if get_property(conn, property_id) is None:
            raise NotFoundError(f"Property {property_id} not found")
        count = reset_property_bookings(conn, property_id, now=started_at)
        record_run(
            conn,
            run_type="reset",
            scope_type="property",
            scope_id=property_id,
            trigger=trigger,
            status="success",
            started_at=started_at,
            processed=count,
            detail={"deactivated": count},
        )

    logger.warning("property_reset", property_id=property_id, deactivated=count)
    return ResetSummary(scope_type="property", scope_id=property_id, deactivated=count)


def disable_feed(engine: Engine, feed_id: str, *, trigger: str = "manual") -> ResetSummary:
    """
    Deactivate a feed and soft-delete every booking it produced.

    Holds the feed's in-process lock so a concurrent sync of the same feed
    cannot re-create bookings mid-cascade.

    Args:
        engine: SQLAlchemy Engine
        feed_id: Feed ID
        trigger: manual or scheduled

    Returns:
        ResetSummary: Number of bookings soft-deleted

    Raises:
        NotFoundError: If the feed does not exist
        LockDenied: If the feed is being synced right now
    """
    started_at = utc_now()
    with sync_locks.hold(f"feed:{feed_id}"):
        with engine.begin() as conn:
            feed = get_feed(conn, feed_id)
            if feed is None:
                raise NotFoundError(f"Feed {feed_id} not found")
            set_feed_active(conn, feed_id, False, started_at)
            count = deactivate_feed_bookings(conn, feed_id, now=started_at)
            record_run(
                conn,
                run_type="feed_disable",
                scope_type="feed",
                scope_id=feed_id,
                trigger=trigger,
                status="success",
                started_at=started_at,
                processed=count,
                detail={"deactivated": count, "property_id": feed["property_id"]},
            )

    logger.info("feed_disabled", feed_id=feed_id, deactivated=count)
    return ResetSummary(scope_type="feed", scope_id=feed_id, deactivated=count)


def sync_all_properties(
    engine: Optional[Engine] = None, dry_run: bool = False, trigger: str = "scheduled"
) -> list[PropertySyncSummary]:
    """
    Run sync_property() for every property with an active feed.

    One property's fatal error is logged and does not stop the others.

    Args:
        engine: SQLAlchemy Engine (defaults to the module singleton)
        dry_run: If True, roll back every write
        trigger: Recorded on each audit row

    Returns:
        list[PropertySyncSummary]: Summaries of the properties that completed
    """
    if engine is None:
        from sync_stays.db.engine import engine as default_engine

        engine = default_engine

    logger.info("sync_all_properties_started")

    with engine.connect() as conn:
        property_ids = list_property_ids(conn)

    logger.info("active_properties_found", count=len(property_ids))

    summaries: list[PropertySyncSummary] = []
    for property_id in property_ids:
        try:
            summaries.append(
                sync_property(engine, property_id, trigger=trigger, dry_run=dry_run)
            )
        except Exception as e:
            logger.exception("property_sync_failed", property_id=property_id, error=str(e))

    logger.info("sync_all_properties_completed", total_properties=len(property_ids))
    return summaries
