"""
Field extraction for reservation confirmation emails.

Each field has an ordered cascade of ExtractionRule objects (see parsers.rules).
Rules only read the subject, the body text or both; nothing here touches the
database, so every rule can be exercised against literal sample strings.
"""

import re
from datetime import date, datetime, timedelta
from typing import Callable, Optional

import structlog
from dateutil import parser as date_parser

from sync_stays.normalizers.bookings import is_placeholder_name
from sync_stays.parsers.markup import message_text
from sync_stays.parsers.rules import ExtractionRule, first_match
from sync_stays.schemas.messages import ExtractedFact, InboundMessage
from sync_stays.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

MIN_GUESTS = 1
MAX_GUESTS = 20

# Year-less dates further than this before the received date belong to next year
YEAR_ROLLOVER_DAYS = 30

CONFIRMATION_SUBJECT = re.compile(
    r"reservation confirmed|booking confirmed|new booking|booking received"
    r"|you have a new reservation|arrival:",
    re.IGNORECASE,
)

# =============================================================================
# Guest name
# =============================================================================

FORBIDDEN_NAMES = {
    "guest",
    "guests",
    "reserved",
    "unknown",
    "empty",
    "not available",
    "blocked",
    "n/a",
    "airbnb",
    "vrbo",
    "homeaway",
    "lodgify",
    "booking.com",
}
FEE_WORDS = re.compile(r"\b(?:service|fees?|tax(?:es)?|admin)\b", re.IGNORECASE)

_TRAILING_NOISE = [
    re.compile(r"\s+arrives\b.*$", re.IGNORECASE),
    re.compile(r"\s+check-?in\b.*$", re.IGNORECASE),
    re.compile(r"\s+checking\b.*$", re.IGNORECASE),
    re.compile(r"\s+for\s+\d+.*$", re.IGNORECASE),
    re.compile(r"\s+\d+\s*nights?.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*$"),
]
_LEADING_NOISE = [
    re.compile(r"^(?:new\s+)?(?:confirmed\s+)?booking\s*[-:]\s*", re.IGNORECASE),
    re.compile(r"^reservation\s*[-:]\s*", re.IGNORECASE),
]


def clean_guest_name(raw: Optional[str]) -> Optional[str]:
    """
    Strip subject/body noise around a guest name and reject non-names.

    Args:
        raw: Captured name text, e.g. "Liz Servin arrives Jan 25"

    Returns:
        Optional[str]: The cleaned name, or None for placeholders, platform
            words, fee lines, digit-led strings and single characters
    """
    if not raw:
        return None

    name = raw.strip()
    for pattern in _TRAILING_NOISE:
        name = pattern.sub("", name).strip()
    for pattern in _LEADING_NOISE:
        name = pattern.sub("", name).strip()
    name = name.strip(" ,;:")

    if name.lower() in FORBIDDEN_NAMES or is_placeholder_name(name):
        return None
    if len(name) < 2:
        return None
    if name[0].isdigit() or re.search(r"\d{4}", name):
        return None
    if FEE_WORDS.search(name):
        return None
    return name


def _name(match: re.Match) -> Optional[str]:
    return clean_guest_name(match.group(1))


_NAME_TOKEN = r"[A-Za-z][A-Za-z'.\-]*"
_BODY_NAME = rf"({_NAME_TOKEN}(?:[ \t]+{_NAME_TOKEN}){{0,2}})"

GUEST_NAME_RULES = [
    ExtractionRule(
        "subject_lodgify",
        re.compile(r"(?i:booking|received):\s+([^(,\-#\n]+)"),
        convert=_name,
        source="subject",
    ),
    ExtractionRule(
        "subject_airbnb",
        re.compile(r"(?i:(?:reservation|booking)\s+(?:confirmed|from))\s*[-–—:]\s*(.+)"),
        convert=_name,
        source="subject",
    ),
    ExtractionRule(
        "body_guest_name",
        re.compile(rf"(?i:\bguest(?:[ \t]+name)?):\s*{_BODY_NAME}"),
        convert=_name,
    ),
    ExtractionRule(
        "body_booked_by",
        re.compile(rf"(?i:\bbooked[ \t]+by):\s*{_BODY_NAME}"),
        convert=_name,
    ),
    ExtractionRule(
        "body_name",
        re.compile(rf"^[ \t]*(?i:name):[ \t]*{_BODY_NAME}", re.MULTILINE),
        convert=_name,
    ),
]

# =============================================================================
# Guest count
# =============================================================================


def _count(match: re.Match) -> int:
    return int(match.group(1))


def _count_in_range(value: int) -> bool:
    return MIN_GUESTS <= value <= MAX_GUESTS


def _count_rule(name: str, pattern: str) -> ExtractionRule:
    return ExtractionRule(name, re.compile(pattern), convert=_count, accept=_count_in_range)


GUEST_COUNT_RULES = [
    _count_rule("guests_label", r"(?i:\b(?:total\s+)?guests?):\s*(\d+)"),
    _count_rule("n_guests", r"\b(\d+)\s+(?i:guests?)\b"),
    _count_rule("party_size", r"(?i:\bparty\s+size):\s*(\d+)"),
    _count_rule("number_of_guests", r"(?i:\bnumber\s+of\s+guests?):\s*(\d+)"),
    _count_rule("adults_label", r"(?i:\badults?):\s*(\d+)"),
    _count_rule("travelers_label", r"(?i:\btravell?ers?):\s*(\d+)"),
    _count_rule("n_adults", r"\b(\d+)\s+(?i:adults?)\b"),
    _count_rule("occupancy", r"(?i:\boccupancy):\s*(\d+)"),
]

# =============================================================================
# Stay dates
# =============================================================================

_MONTH = r"(?i:(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*)\.?"
_DATE = (
    rf"(\d{{4}}-\d{{2}}-\d{{2}}"
    rf"|{_MONTH}\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?"
    rf"|\d{{1,2}}\s+{_MONTH}(?:,?\s+\d{{4}})?)"
)
_NEAR = r"[\s\S]{0,80}?"

ARRIVAL_SUBJECT = re.compile(rf"(?i:arrival):\s*{_DATE}")
NIGHTS_SUBJECT = re.compile(r"(\d+)\s+(?i:nights?)\b")


def parse_stay_date(text: str, reference: date) -> Optional[date]:
    """
    Parse a stay date, inferring the year when the text has none.

    Year-less dates take the reference year and roll to the next year when
    they fall more than YEAR_ROLLOVER_DAYS before the reference date.

    Args:
        text: Date text such as "Jan 25", "Sun, Jan 25, 2026" or "2026-01-25"
        reference: Date the message was received

    Returns:
        Optional[date]: Parsed date, or None if unparseable
    """
    cleaned = re.sub(r"(\d)(?:st|nd|rd|th)\b", r"\1", text.strip())
    has_year = re.search(r"\b\d{4}\b", cleaned) is not None
    try:
        parsed = date_parser.parse(cleaned, default=datetime(reference.year, 1, 1)).date()
    except (ValueError, OverflowError):
        return None

    if not has_year and parsed < reference - timedelta(days=YEAR_ROLLOVER_DAYS):
        try:
            parsed = parsed.replace(year=parsed.year + 1)
        except ValueError:
            return None
    return parsed


def _date_converter(reference: date) -> Callable[[re.Match], Optional[date]]:
    def convert(match: re.Match) -> Optional[date]:
        return parse_stay_date(match.group(1), reference)

    return convert


def check_in_rules(reference: date) -> list[ExtractionRule]:
    """Check-in cascade for a message received on ``reference``."""
    convert = _date_converter(reference)
    return [
        ExtractionRule("subject_arrival", ARRIVAL_SUBJECT, convert=convert, source="subject"),
        ExtractionRule(
            "body_checkin_anchor",
            re.compile(rf"(?i:\bcheck-?in\b){_NEAR}\b{_DATE}"),
            convert=convert,
        ),
        ExtractionRule(
            "body_arrives_label",
            re.compile(rf"(?i:\b(?:arrives|arrival date|arriving)):?\s*{_NEAR}\b{_DATE}"),
            convert=convert,
        ),
        ExtractionRule(
            "subject_arrives",
            re.compile(rf"(?i:\barrives)\s+(?:[A-Za-z]{{3,9}},?\s+)?{_DATE}"),
            convert=convert,
            source="subject",
        ),
    ]


def check_out_rules(reference: date) -> list[ExtractionRule]:
    """Check-out cascade (after the arrival + nights rule) for a message."""
    convert = _date_converter(reference)
    return [
        ExtractionRule(
            "body_checkout_anchor",
            re.compile(rf"(?i:\bcheck-?out\b){_NEAR}\b{_DATE}"),
            convert=convert,
        ),
        ExtractionRule(
            "body_departs_label",
            re.compile(rf"(?i:\b(?:departs|departure date|departing)):?\s*{_NEAR}\b{_DATE}"),
            convert=convert,
        ),
    ]


ARRIVAL_NIGHTS_RULE = "subject_arrival_nights"

# =============================================================================
# Confirmation code and platform
# =============================================================================


def _has_digit(value: str) -> bool:
    return any(char.isdigit() for char in value)


CONFIRMATION_CODE_RULES = [
    ExtractionRule(
        "subject_hash_code",
        re.compile(r"#([A-Z0-9]{8,15})\b"),
        accept=_has_digit,
        source="subject",
    ),
    ExtractionRule(
        "body_code_label",
        re.compile(
            r"(?i:confirmation\s+code|reservation\s+(?:id|code))[^A-Z0-9]{0,40}?\b([A-Z0-9]{8,15})\b"
        ),
        accept=_has_digit,
    ),
]


def _platform(tag: str) -> Callable[[re.Match], str]:
    return lambda match: tag


PLATFORM_RULES = [
    ExtractionRule("airbnb", re.compile(r"(?i:airbnb)"), convert=_platform("airbnb"), source="all"),
    ExtractionRule("lodgify", re.compile(r"(?i:lodgify)"), convert=_platform("lodgify"), source="all"),
    ExtractionRule("vrbo", re.compile(r"(?i:vrbo|homeaway)"), convert=_platform("vrbo"), source="all"),
    ExtractionRule(
        "booking_com", re.compile(r"(?i:booking\.com)"), convert=_platform("booking_com"), source="all"
    ),
]

# Rule names per field in priority order, used to rank stored field_sources
RULE_ORDER: dict[str, list[str]] = {
    "guest_name": [rule.name for rule in GUEST_NAME_RULES],
    "guest_count": [rule.name for rule in GUEST_COUNT_RULES],
    "check_in": [rule.name for rule in check_in_rules(date(2000, 1, 1))],
    "check_out": [ARRIVAL_NIGHTS_RULE] + [rule.name for rule in check_out_rules(date(2000, 1, 1))],
    "confirmation_code": [rule.name for rule in CONFIRMATION_CODE_RULES],
    "platform": [rule.name for rule in PLATFORM_RULES],
}

# =============================================================================
# Message-level extraction
# =============================================================================


def is_reservation_email(subject: Optional[str]) -> bool:
    """True if the subject announces a new or confirmed reservation."""
    return bool(subject) and CONFIRMATION_SUBJECT.search(subject or "") is not None


def extract_fields(subject: str, body: str, reference: date, sender: str = "") -> ExtractedFact:
    """
    Run every field cascade over one message.

    Args:
        subject: Message subject
        body: Plain-text body (markup already stripped)
        reference: Date the message was received, for year inference
        sender: From header, used for platform detection

    Returns:
        ExtractedFact: Extracted fields; missing fields are None
    """
    fact = ExtractedFact()
    sources: dict[str, str] = {}

    def take(field: str, found) -> None:
        if found is not None:
            rule_name, value = found
            setattr(fact, field, value)
            sources[field] = rule_name

    take("guest_name", first_match(GUEST_NAME_RULES, body, subject=subject))
    take("guest_count", first_match(GUEST_COUNT_RULES, body, subject=subject))
    take("confirmation_code", first_match(CONFIRMATION_CODE_RULES, body, subject=subject))
    take("platform", first_match(PLATFORM_RULES, body, subject=subject, sender=sender))
    take("check_in", first_match(check_in_rules(reference), body, subject=subject))

    if sources.get("check_in") == "subject_arrival" and fact.check_in is not None:
        nights = NIGHTS_SUBJECT.search(subject)
        if nights and int(nights.group(1)) > 0:
            check_out = fact.check_in + timedelta(days=int(nights.group(1)))
            take("check_out", (ARRIVAL_NIGHTS_RULE, check_out))
    if fact.check_out is None:
        take("check_out", first_match(check_out_rules(reference), body, subject=subject))

    if fact.check_in and fact.check_out and fact.check_out <= fact.check_in:
        logger.debug("checkout_dropped", check_in=str(fact.check_in), check_out=str(fact.check_out))
        fact.check_out = None
        sources.pop("check_out", None)

    fact.field_sources = sources
    return fact


def extract_reservation(message: InboundMessage) -> Optional[ExtractedFact]:
    """
    Extract a reservation fact from one inbound message.

    Args:
        message: Message handed over by the mail collaborator

    Returns:
        Optional[ExtractedFact]: None for non-reservation messages and for
            reservation emails with neither a check-in nor a confirmation code
    """
    subject = message.subject or ""
    if not is_reservation_email(subject):
        return None

    body = message_text(message.body_html, message.body_text)
    reference = (message.received_at or utc_now()).date()
    fact = extract_fields(subject, body, reference, sender=message.sender or "")

    if not fact.is_usable():
        logger.info("reservation_email_unparsed", message_id=message.message_id, subject=subject[:80])
        return None
    return fact
