import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse

import structlog

from sync_stays.db.engine import engine
from sync_stays.db.readers.sync_runs import list_recent_runs
from sync_stays.logging_config import setup_logging
from sync_stays.services.sync import sync_property

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Sync the calendar feeds of a single property, bypassing the recent-run debounce.

    Usage:
        python scripts/sync_one_property.py <property_id> [--feed-id ID] [--dry-run]
    """
    parser = argparse.ArgumentParser(description="Sync one property's iCal feeds")
    parser.add_argument("property_id")
    parser.add_argument("--feed-id", default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    logger.info("manual_sync_requested", property_id=args.property_id, dry_run=args.dry_run)

    try:
        summary = sync_property(
            engine,
            args.property_id,
            feed_id=args.feed_id,
            force=True,
            dry_run=args.dry_run,
        )
        logger.info("manual_sync_finished", **summary.model_dump(exclude={"failures"}))
        with engine.connect() as conn:
            for run in list_recent_runs(conn, args.feed_id or args.property_id, limit=5):
                logger.info(
                    "recent_run",
                    run_type=run["run_type"],
                    status=run["status"],
                    finished_at=run["finished_at"].isoformat(),
                )
    except Exception:
        logger.exception("manual_sync_failed", property_id=args.property_id)
        raise


if __name__ == "__main__":
    main()
