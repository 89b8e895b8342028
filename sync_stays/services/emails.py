"""Connection-level email extraction orchestrator."""

from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_stays.db.readers.facts import get_fact_for_message
from sync_stays.db.readers.messages import list_stored_messages
from sync_stays.db.readers.properties import list_connection_property_ids
from sync_stays.db.writers.facts import insert_fact, update_fact
from sync_stays.db.writers.messages import mark_processed, store_messages
from sync_stays.db.writers.sync_runs import record_run
from sync_stays.exceptions import LockDenied
from sync_stays.metrics import facts_extracted
from sync_stays.normalizers.facts import merge_fact
from sync_stays.parsers.reservation_email import extract_reservation, is_reservation_email
from sync_stays.schemas.messages import ExtractedFact, InboundMessage
from sync_stays.schemas.summaries import EmailSyncSummary, ItemFailure
from sync_stays.services.enrichment import enrich_property
from sync_stays.services.locks import should_run, sync_locks
from sync_stays.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def _to_message(row: dict[str, Any]) -> InboundMessage:
    return InboundMessage(
        message_id=row["message_id"],
        subject=row["subject"] or "",
        body_html=row["body_html"],
        body_text=row["body_text"],
        sender=row["sender"],
        received_at=row["received_at"],
    )


def _is_past_stay(extracted: ExtractedFact, message: InboundMessage, now: datetime) -> bool:
    """True if the stay had already begun when the confirmation arrived."""
    if extracted.check_in is None:
        return False
    received = message.received_at or now
    return extracted.check_in < received.date()


def _extract_messages(
    conn: Connection,
    connection_id: str,
    rows: list[dict[str, Any]],
    summary: EmailSyncSummary,
    now: datetime,
) -> None:
    """
    Extract facts from stored messages and SAFE-merge them into the fact table.

    Extraction errors are recorded per message; database errors propagate.
    """
    property_ids = list_connection_property_ids(conn, connection_id)
    fact_property_id: Optional[str] = property_ids[0] if len(property_ids) == 1 else None

    for row in rows:
        message = _to_message(row)
        try:
            extracted = extract_reservation(message)
        except Exception as e:
            logger.exception("message_extraction_failed", message_id=message.message_id, error=str(e))
            facts_extracted.labels(outcome="failed").inc()
            summary.failures.append(ItemFailure(item_id=message.message_id, error=str(e)))
            continue

        if extracted is None:
            if is_reservation_email(message.subject):
                facts_extracted.labels(outcome="unparsed").inc()
            else:
                summary.not_reservations += 1
            mark_processed(conn, connection_id, message.message_id, now)
            continue

        existing = get_fact_for_message(conn, connection_id, message.message_id)
        if existing is None and _is_past_stay(extracted, message, now):
            summary.past_stays += 1
            facts_extracted.labels(outcome="past").inc()
            logger.info(
                "past_stay_skipped",
                message_id=message.message_id,
                check_in=str(extracted.check_in),
            )
            mark_processed(conn, connection_id, message.message_id, now)
            continue

        if existing is None:
            insert_fact(
                conn,
                connection_id=connection_id,
                property_id=fact_property_id,
                message_id=message.message_id,
                fact=extracted,
                now=now,
            )
            summary.facts_created += 1
            facts_extracted.labels(outcome="created").inc()
        else:
            merged = merge_fact(existing, extracted)
            changes = dict(merged.changes)
            if existing["property_id"] is None and fact_property_id is not None:
                changes["property_id"] = fact_property_id
            if changes:
                update_fact(conn, existing["id"], changes, now)
            if merged.changed:
                summary.facts_updated += 1
                facts_extracted.labels(outcome="updated").inc()
                logger.info(
                    "fact_improved",
                    fact_id=existing["id"],
                    message_id=message.message_id,
                    fields=merged.improved_fields,
                )
            else:
                summary.facts_unchanged += 1
                facts_extracted.labels(outcome="unchanged").inc()

        mark_processed(conn, connection_id, message.message_id, now)


def _finish(
    conn: Connection,
    connection_id: str,
    summary: EmailSyncSummary,
    trigger: str,
    started_at: datetime,
    now: datetime,
) -> None:
    """Enrich the linked properties and append the email audit row."""
    for property_id in list_connection_property_ids(conn, connection_id):
        enrichment = enrich_property(conn, property_id, trigger=trigger, now=now)
        summary.matched += enrichment.matched

    processed = summary.facts_created + summary.facts_updated + summary.facts_unchanged
    if summary.failures and not processed:
        summary.status = "failure"
    elif summary.failures:
        summary.status = "partial"

    record_run(
        conn,
        run_type="email",
        scope_type="connection",
        scope_id=connection_id,
        trigger=trigger,
        status=summary.status,
        started_at=started_at,
        events_found=summary.messages_received,
        processed=processed,
        matched=summary.matched,
        errors=len(summary.failures),
        detail={
            "facts_created": summary.facts_created,
            "facts_updated": summary.facts_updated,
            "not_reservations": summary.not_reservations,
            "past_stays": summary.past_stays,
            "failures": [failure.model_dump() for failure in summary.failures],
        },
    )


def sync_connection_emails(
    engine: Engine,
    connection_id: str,
    messages: list[InboundMessage],
    *,
    trigger: str = "manual",
    force: bool = False,
) -> EmailSyncSummary:
    """
    Store a batch of messages for a mail connection and extract reservation facts.

    Messages are always stored. Extraction covers every stored message not yet
    processed (or changed since), so a run declined by the concurrency guard
    leaves its messages for the next admitted run.

    Args:
        engine: SQLAlchemy Engine
        connection_id: Mail connection ID
        messages: Messages selected by the mail collaborator
        trigger: manual or scheduled
        force: Bypass the recent-run debounce

    Returns:
        EmailSyncSummary: Fact counts, enrichment merges and per-message failures

    Raises:
        SQLAlchemyError: If the ledger store cannot be reached
    """
    log = logger.bind(connection_id=connection_id, trigger=trigger)
    started_at = utc_now()
    summary = EmailSyncSummary(connection_id=connection_id, messages_received=len(messages))

    with engine.begin() as conn:
        summary.messages_stored = store_messages(conn, connection_id, messages, started_at)

    if not force:
        with engine.connect() as conn:
            admitted = should_run(conn, "email", connection_id)
        if not admitted:
            summary.skipped = True
            summary.skip_reason = "recent_run"
            return summary

    try:
        with sync_locks.hold(f"connection:{connection_id}"):
            log.info("email_sync_started", messages=len(messages))
            now = utc_now()
            with engine.begin() as conn:
                pending = list_stored_messages(conn, connection_id, pending_only=True)
                _extract_messages(conn, connection_id, pending, summary, now)
                _finish(conn, connection_id, summary, trigger, started_at, now)
    except LockDenied:
        summary.skipped = True
        summary.skip_reason = "locked"
        log.info("email_sync_skipped", reason="locked")
        return summary
    except SQLAlchemyError as e:
        log.exception("email_sync_failed", error=str(e))
        raise

    log.info(
        "email_sync_completed",
        status=summary.status,
        facts_created=summary.facts_created,
        facts_updated=summary.facts_updated,
        matched=summary.matched,
        failures=len(summary.failures),
    )
    return summary


def reprocess_connection_messages(
    engine: Engine, connection_id: str, *, trigger: str = "manual"
) -> EmailSyncSummary:
    """
    Re-run extraction over every stored message of a connection (SAFE backfill).

    Existing facts only gain or improve fields; nothing is nulled out.

    Args:
        engine: SQLAlchemy Engine
        connection_id: Mail connection ID
        trigger: manual or scheduled

    Returns:
        EmailSyncSummary: Fact counts and enrichment merges

    Raises:
        LockDenied: If the connection is being synced right now
    """
    started_at = utc_now()
    summary = EmailSyncSummary(connection_id=connection_id)

    with sync_locks.hold(f"connection:{connection_id}"):
        with engine.begin() as conn:
            rows = list_stored_messages(conn, connection_id)
            summary.messages_received = len(rows)
            _extract_messages(conn, connection_id, rows, summary, started_at)
            _finish(conn, connection_id, summary, trigger, started_at, started_at)

    logger.info(
        "connection_reprocessed",
        connection_id=connection_id,
        facts_created=summary.facts_created,
        facts_updated=summary.facts_updated,
        facts_unchanged=summary.facts_unchanged,
    )
    return summary
