"""
Client module for fetching and parsing published iCal feeds, with retries on
timeouts, rate limiting and upstream 5xx responses.
"""

import hashlib
import time
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import requests
import structlog
from icalendar import Calendar

from sync_stays.config import FEED_FETCH_TIMEOUT_SECONDS
from sync_stays.exceptions import FetchError
from sync_stays.schemas.calendar import CalendarEvent

logger = structlog.get_logger(__name__)

MAX_RETRIES = 2
RETRY_DELAY = 1.0
REQUEST_HEADERS = {
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.8",
    "User-Agent": "sync-stays/1.0 (+ical)",
}


def should_retry(res: Optional[requests.Response], err: Optional[Exception]) -> bool:
    """
    Determine whether the request should be retried based on response or error.

    Args:
        res (Optional[requests.Response]): Response object if available.
        err (Optional[Exception]): Exception raised by the request, if any.

    Returns:
        bool: True if the request should be retried, False otherwise.
    """
    if res is not None and res.status_code == 429:
        return True
    if isinstance(err, requests.Timeout):
        return True
    if res is not None and 500 <= res.status_code < 600:
        return True
    return False


def fetch_calendar(url: str, timeout: float = FEED_FETCH_TIMEOUT_SECONDS) -> Tuple[str, int]:
    """
    Download an iCal document.

    Args:
        url (str): Published feed URL.
        timeout (float): Per-request timeout in seconds.

    Returns:
        Tuple[str, int]: Document text and HTTP status code.

    Raises:
        FetchError: On network failure, a non-2xx response after retries, or a
            body that is not an iCal document.
    """
    retries = 0

    while True:
        res: Optional[requests.Response] = None
        try:
            res = requests.get(url, headers=REQUEST_HEADERS, timeout=timeout, allow_redirects=True)
            res.raise_for_status()
            break
        except requests.RequestException as err:
            status = res.status_code if res is not None else None
            logger.warning("feed_fetch_error", url=url, http_status=status, error=str(err))
            retries += 1
            if retries > MAX_RETRIES or not should_retry(res, err):
                raise FetchError(f"Failed to fetch feed: {err}", url=url, http_status=status) from err
            time.sleep(RETRY_DELAY * retries)

    body = res.text
    if "BEGIN:VCALENDAR" not in body:
        raise FetchError(
            "Response is not an iCal document", url=url, http_status=res.status_code
        )
    return body, res.status_code


def synthetic_uid(start: date, end: date, summary: str) -> str:
    """
    Build a stable UID for events that do not carry one.

    Args:
        start: Event start
        end: Event end
        summary: Event summary

    Returns:
        str: Deterministic identifier, identical across re-fetches of the same event
    """
    digest = hashlib.sha1(f"{start.isoformat()}|{end.isoformat()}|{summary}".encode()).hexdigest()
    return f"generated-{digest[:20]}"


def _event_end(start: date, component) -> Optional[date]:
    dtend = component.get("DTEND")
    if dtend is not None:
        return dtend.dt
    duration = component.get("DURATION")
    if duration is not None:
        return start + duration.dt
    if not isinstance(start, datetime):
        return start + timedelta(days=1)
    return None


def parse_calendar(text: str) -> list[CalendarEvent]:
    """
    Parse an iCal document into calendar events.

    Events without DTSTART, or timestamped events without DTEND/DURATION, are
    skipped. A calendar with no VEVENT blocks yields an empty list.

    Args:
        text (str): Raw iCal document.

    Returns:
        list[CalendarEvent]: Parsed events in document order.

    Raises:
        FetchError: If the document cannot be parsed.
    """
    try:
        calendar = Calendar.from_ical(text)
    except ValueError as err:
        raise FetchError(f"Unparseable iCal document: {err}") from err

    events: list[CalendarEvent] = []
    for component in calendar.walk("VEVENT"):
        dtstart = component.get("DTSTART")
        if dtstart is None:
            logger.debug("event_skipped", reason="missing_dtstart")
            continue

        start = dtstart.dt
        end = _event_end(start, component)
        if end is None:
            logger.debug("event_skipped", reason="missing_dtend", start=str(start))
            continue

        summary = str(component.get("SUMMARY", "")).strip()
        description = component.get("DESCRIPTION")
        uid = component.get("UID")

        events.append(
            CalendarEvent(
                uid=str(uid).strip() if uid else synthetic_uid(start, end, summary),
                summary=summary,
                description=str(description) if description is not None else None,
                start=start,
                end=end,
                all_day=not isinstance(start, datetime),
            )
        )

    return events
