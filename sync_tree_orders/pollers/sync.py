import structlog

from sync_tree_orders.logging_config import setup_logging
from sync_tree_orders.services.sync import sync_all_accounts

# Setup logging
setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    # Run a full sync across all active accounts
    results = sync_all_accounts()
    logger.info("scheduled_sync_finished", accounts=len(results))


if __name__ == "__main__":
    main()
