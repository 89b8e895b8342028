from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import structlog

from sync_stays.config import FEED_FETCH_TIMEOUT_SECONDS, MAX_FEED_WORKERS
from sync_stays.exceptions import FetchError
from sync_stays.metrics import feed_fetch_duration, feed_fetch_total
from sync_stays.network.calendar_client import fetch_calendar, parse_calendar
from sync_stays.schemas.calendar import CalendarEvent

logger = structlog.get_logger(__name__)


@dataclass
class FeedPollResult:
    """Outcome of fetching one feed: either events or the error that stopped it."""

    feed_id: str
    events: list[CalendarEvent] = field(default_factory=list)
    http_status: Optional[int] = None
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def poll_feed(feed: Mapping[str, Any], timeout: float = FEED_FETCH_TIMEOUT_SECONDS) -> FeedPollResult:
    """
    Fetch and parse one iCal feed.

    Args:
        feed: Feed row mapping (id, ical_url, source_type)
        timeout: Per-request timeout in seconds

    Returns:
        FeedPollResult: Events on success, the FetchError on failure
    """
    source_type = feed["source_type"] or "other"
    with feed_fetch_duration.labels(source_type=source_type).time():
        try:
            text, status = fetch_calendar(feed["ical_url"], timeout=timeout)
            events = parse_calendar(text)
        except Exception as exc:
            err = exc if isinstance(exc, FetchError) else FetchError(str(exc), url=feed["ical_url"])
            feed_fetch_total.labels(source_type=source_type, status="failure").inc()
            logger.warning(
                "feed_fetch_failed",
                feed_id=feed["id"],
                http_status=err.http_status,
                error=str(err),
            )
            return FeedPollResult(feed_id=feed["id"], http_status=err.http_status, error=err)

    feed_fetch_total.labels(source_type=source_type, status="success").inc()
    logger.info("feed_fetched", feed_id=feed["id"], events=len(events), http_status=status)
    return FeedPollResult(feed_id=feed["id"], events=events, http_status=status)


def poll_property_feeds(
    feeds: Sequence[Mapping[str, Any]], max_workers: int = MAX_FEED_WORKERS
) -> list[FeedPollResult]:
    """
    Fetch several feeds with bounded parallelism.

    Network work only; results are reconciled on the calling thread. One
    feed's failure is captured in its own result and never affects siblings.

    Args:
        feeds: Feed row mappings
        max_workers: Upper bound on concurrent fetches

    Returns:
        list[FeedPollResult]: One result per feed, in input order
    """
    if not feeds:
        return []
    if len(feeds) == 1:
        return [poll_feed(feeds[0])]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(feeds))) as pool:
        return list(pool.map(poll_feed, feeds))
