import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse

import structlog

from rentaly.config import OUTBOX_BATCH_SIZE
from rentaly.db.engine import engine
from rentaly.logging_config import setup_logging
from rentaly.services.notifications import dispatch_outbox

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Deliver pending outbox events to the notification webhook.

    Meant to run from cron; each run handles at most one batch per --batches.
    """
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("--batch-size", type=int, default=OUTBOX_BATCH_SIZE)
    parser.add_argument("--batches", type=int, default=1)
    args = parser.parse_args()

    try:
        for _ in range(args.batches):
            summary = dispatch_outbox(engine, batch_size=args.batch_size)
            if not any(summary.values()):
                break
    except Exception:
        logger.exception("outbox_dispatch_failed")
        raise


if __name__ == "__main__":
    main()
