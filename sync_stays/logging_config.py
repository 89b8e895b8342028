from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping

import structlog

from sync_stays.config import LOG_FORMAT, LOG_LEVEL

Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

# Email bodies and raw calendar text never reach the log in full
MAX_LOGGED_VALUE_CHARS = 500


def truncate_long_values(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Cut oversized string values bound to an event."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_LOGGED_VALUE_CHARS:
            event_dict[key] = value[:MAX_LOGGED_VALUE_CHARS] + "...[truncated]"
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging for the sync service.

    LOG_FORMAT=json emits one JSON object per line for log aggregation;
    LOG_FORMAT=console (the default under LOG_LEVEL=DEBUG) renders colored
    text. Context bound with structlog.contextvars, such as request_id, is
    merged into every event.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=LOG_LEVEL,
    )

    # Feed fetches and ledger queries are chatty below WARNING
    for noisy_logger in ("urllib3", "requests", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    renderer: Processor
    if LOG_FORMAT == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            truncate_long_values,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
