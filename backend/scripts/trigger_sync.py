#!/usr/bin/env python
"""Run one Open Finance sync duty from the command line.

Bypasses the OPEN_FINANCE_SYNC_ENABLED kill switch, which only governs
scheduled runs.

Usage:
    python -m scripts.trigger_sync --duty balances
    python -m scripts.trigger_sync --duty transactions
    python -m scripts.trigger_sync --duty tokens
    python -m scripts.trigger_sync --duty stale --hours 48
"""

import argparse
import sys

from config import settings
from database import init_db, session_scope
from logging_config import setup_logging
from services.sync_log_service import SyncLogService
from services.sync_service import OpenFinanceSyncService, SyncAlreadyRunningError

DUTIES = ("balances", "transactions", "tokens", "stale")


def run_duty(duty: str, hours: int | None = None, sync_service: OpenFinanceSyncService | None = None) -> int:
    """Run ``duty`` against the configured database and print a summary.

    Returns:
        Process exit code: 0 on success, 1 if any account failed,
        2 if the duty was already running.
    """
    service = sync_service or OpenFinanceSyncService()
    with session_scope() as db:
        if duty == "stale":
            accounts = SyncLogService.find_stale_accounts(
                db, hours or settings.OPEN_FINANCE_STALE_SYNC_HOURS
            )
            print(f"{len(accounts)} stale accounts")
            for account in accounts:
                print(f"  {account.id}  {account.external_account_id}  "
                      f"status={account.sync_status}  last_synced={account.last_synced_at}")
            return 0

        runner = {
            "balances": service.sync_all_balances,
            "transactions": service.sync_all_transactions,
            "tokens": service.refresh_expiring_tokens,
        }[duty]
        try:
            summary = runner(db)
        except SyncAlreadyRunningError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    print(summary.model_dump_json(indent=2))
    return 1 if summary.failed else 0


def main(argv: list[str] | None = None) -> None:
    """Entry point: parse args and run the requested duty."""
    parser = argparse.ArgumentParser(
        description="Run an Open Finance sync duty once.",
    )
    parser.add_argument("--duty", required=True, choices=DUTIES, help="Duty to run")
    parser.add_argument(
        "--hours",
        type=int,
        default=None,
        help="Staleness window for --duty stale (default: OPEN_FINANCE_STALE_SYNC_HOURS)",
    )
    args = parser.parse_args(argv)

    setup_logging()
    init_db()
    sys.exit(run_duty(args.duty, args.hours))


if __name__ == "__main__":
    main()
