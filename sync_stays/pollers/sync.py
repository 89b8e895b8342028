import structlog

from sync_stays.config import DRY_RUN
from sync_stays.logging_config import setup_logging
from sync_stays.services.sync import sync_all_properties

# Setup logging
setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    # Run a calendar sync across every property with an active feed
    summaries = sync_all_properties(dry_run=DRY_RUN)
    logger.info(
        "scheduled_sync_finished",
        properties=len(summaries),
        failed=sum(1 for s in summaries if s.status == "failure"),
    )


if __name__ == "__main__":
    main()
