import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse

import structlog

from rentaly.db.engine import engine
from rentaly.logging_config import setup_logging
from rentaly.services.coupons import reconcile_coupons
from rentaly.services.reconciliation import reconcile_pending_balances

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Report (and by default repair) drift in owner pending balances and coupon usage counts.
    """
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("--dry-run", action="store_true", help="Only report drift")
    args = parser.parse_args()

    try:
        balances = reconcile_pending_balances(engine, apply=not args.dry_run)
        coupons = reconcile_coupons(engine, apply=not args.dry_run)
        logger.info(
            "ledger_reconciliation_finished",
            balance_drift=len(balances),
            coupon_drift=len(coupons),
            dry_run=args.dry_run,
        )
    except Exception:
        logger.exception("ledger_reconciliation_failed")
        raise


if __name__ == "__main__":
    main()
