import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import structlog

from sync_tree_orders.logging_config import setup_logging
from sync_tree_orders.services.sync import run_sync

setup_logging()
logger = structlog.get_logger(__name__)


def main(argv: list[str]) -> int:
    """
    Run a single sync from the command line and print the SyncResult as JSON.

    Usage:
        python scripts/sync_one_account.py <account_id>

    Returns:
        int: 0 if the run finished without errors, 1 otherwise
    """
    if len(argv) != 2:
        print("usage: sync_one_account.py <account_id>", file=sys.stderr)
        return 2

    account_id = argv[1]
    logger.info("manual_sync_started", account_id=account_id)

    result = run_sync(account_id)
    print(result.model_dump_json(indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv))
