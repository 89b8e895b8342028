"""
Prometheus metrics for feed syncs, email extraction and enrichment.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from sync_stays.metrics import feed_fetch_duration, feed_fetch_total
    >>> with feed_fetch_duration.labels(source_type="airbnb").time():
    ...     events = fetch_and_parse(feed)
    >>> feed_fetch_total.labels(source_type="airbnb", status="success").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Calendar Metrics
# =============================================================================

feed_fetch_total = Counter(
    "stays_feed_fetches_total",
    "Total number of iCal feed fetches (success and failure)",
    ["source_type", "status"],
)
"""
Counter for feed fetches.

Labels:
    source_type: Feed platform tag (airbnb, vrbo, booking_com, lodgify, other)
    status: success or failure
"""

feed_fetch_duration = Histogram(
    "stays_feed_fetch_duration_seconds",
    "Duration of iCal feed fetch and parse in seconds",
    ["source_type"],
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, float("inf")),
)

bookings_reconciled = Counter(
    "stays_bookings_reconciled_total",
    "Ledger rows touched by calendar reconciliation",
    ["action"],
)
"""
Counter for reconciliation outcomes.

Labels:
    action: created, updated, deactivated, suppressed, conflict
"""

# =============================================================================
# Email / Enrichment Metrics
# =============================================================================

facts_extracted = Counter(
    "stays_facts_extracted_total",
    "Reservation facts written from email messages",
    ["outcome"],
)
"""
Counter for extraction outcomes.

Labels:
    outcome: created, updated, unchanged, past, unparsed, failed
"""

bookings_enriched = Counter(
    "stays_bookings_enriched_total",
    "Bookings enriched with guest details from reservation facts",
    ["match"],
)
"""
Counter for enrichment merges.

Labels:
    match: confirmation_code, exact_dates, date_slack
"""

facts_missing_from_calendar = Counter(
    "stays_facts_missing_from_calendar_total",
    "Confirmed reservation facts with no active booking on any feed",
)

# =============================================================================
# Concurrency Guard Metrics
# =============================================================================

runs_declined = Counter(
    "stays_runs_declined_total",
    "Sync runs declined by the concurrency guard",
    ["reason"],
)
"""
Counter for declined runs.

Labels:
    reason: recent_run (soft lock) or locked (in-process lock)
"""

stale_locks_recovered = Counter(
    "stays_stale_locks_recovered_total",
    "In-process sync locks reclaimed after exceeding their TTL",
)
