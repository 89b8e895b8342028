import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse

import structlog

from sync_stays.db.engine import engine
from sync_stays.logging_config import setup_logging
from sync_stays.services.emails import reprocess_connection_messages

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Re-run extraction over every stored message of one or more mail connections.

    Facts only gain or improve fields, so running this after an extractor
    change is safe.

    Usage:
        python scripts/backfill_facts.py <connection_id> [<connection_id> ...]
    """
    parser = argparse.ArgumentParser(description="Backfill reservation facts from stored emails")
    parser.add_argument("connection_ids", nargs="+")
    args = parser.parse_args()

    for connection_id in args.connection_ids:
        try:
            summary = reprocess_connection_messages(engine, connection_id)
            logger.info(
                "backfill_finished",
                connection_id=connection_id,
                facts_created=summary.facts_created,
                facts_updated=summary.facts_updated,
                matched=summary.matched,
            )
        except Exception:
            logger.exception("backfill_failed", connection_id=connection_id)
            raise


if __name__ == "__main__":
    main()
