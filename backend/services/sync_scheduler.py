"""Background scheduler for the Open Finance sync duties.

Registers three APScheduler jobs in one process-wide ``BackgroundScheduler``:

- balance sync on a fixed interval (after an initial delay),
- transaction sync on a cron schedule (02:00 daily by default),
- token refresh on a fixed interval (hourly by default).

Jobs never overlap with themselves (``max_instances=1``) and never raise:
a failing run is logged and the job stays scheduled for its next fire.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from config import Settings, settings as default_settings
from database import session_scope
from services.sync_service import OpenFinanceSyncService, SyncAlreadyRunningError

logger = logging.getLogger(__name__)

BALANCE_SYNC_JOB_ID = "open_finance_balance_sync"
TRANSACTION_SYNC_JOB_ID = "open_finance_transaction_sync"
TOKEN_REFRESH_JOB_ID = "open_finance_token_refresh"


class SyncScheduler:
    """Owns the scheduled sync jobs and their guards."""

    def __init__(
        self,
        sync_service: Optional[OpenFinanceSyncService] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        scheduler: Optional[BackgroundScheduler] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self._sync_service = sync_service
        self._owns_sync_service = sync_service is None
        self._session_factory = session_factory
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    @property
    def sync_service(self) -> OpenFinanceSyncService:
        if self._sync_service is None:
            self._sync_service = OpenFinanceSyncService()
        return self._sync_service

    def register_jobs(self) -> None:
        """Add (or replace) the three sync jobs on the scheduler."""
        s = self.settings
        first_balance_run = datetime.now(timezone.utc) + timedelta(
            milliseconds=s.OPEN_FINANCE_BALANCE_SYNC_INITIAL_DELAY_MS
        )
        common = {"max_instances": 1, "coalesce": True, "replace_existing": True}

        self.scheduler.add_job(
            self.run_balance_sync,
            trigger=IntervalTrigger(
                seconds=s.OPEN_FINANCE_BALANCE_SYNC_INTERVAL_MS / 1000, timezone=timezone.utc
            ),
            id=BALANCE_SYNC_JOB_ID,
            name="Open Finance balance sync",
            next_run_time=first_balance_run,
            **common,
        )
        self.scheduler.add_job(
            self.run_transaction_sync,
            trigger=CronTrigger.from_crontab(
                s.OPEN_FINANCE_TRANSACTION_SYNC_CRON, timezone=timezone.utc
            ),
            id=TRANSACTION_SYNC_JOB_ID,
            name="Open Finance transaction sync",
            **common,
        )
        self.scheduler.add_job(
            self.run_token_refresh,
            trigger=IntervalTrigger(
                seconds=s.OPEN_FINANCE_TOKEN_REFRESH_INTERVAL_MS / 1000, timezone=timezone.utc
            ),
            id=TOKEN_REFRESH_JOB_ID,
            name="Open Finance token refresh",
            **common,
        )
        logger.info(
            "Sync jobs registered: balances every %ds (first in %ds), "
            "transactions at cron '%s', tokens every %ds",
            s.OPEN_FINANCE_BALANCE_SYNC_INTERVAL_MS // 1000,
            s.OPEN_FINANCE_BALANCE_SYNC_INITIAL_DELAY_MS // 1000,
            s.OPEN_FINANCE_TRANSACTION_SYNC_CRON,
            s.OPEN_FINANCE_TOKEN_REFRESH_INTERVAL_MS // 1000,
        )

    def start(self) -> None:
        self.register_jobs()
        self.scheduler.start()
        logger.info("Open Finance sync scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        """Stop the jobs and close the sync service this scheduler built."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Open Finance sync scheduler stopped")
        if self._owns_sync_service and self._sync_service is not None:
            self._sync_service.close()
            self._sync_service = None

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    def run_balance_sync(self) -> None:
        self._run_duty("balance sync", self.sync_service.sync_all_balances)

    def run_transaction_sync(self) -> None:
        self._run_duty("transaction sync", self.sync_service.sync_all_transactions)

    def run_token_refresh(self) -> None:
        self._run_duty("token refresh", self.sync_service.refresh_expiring_tokens)

    def _run_duty(self, name: str, duty: Callable[[Session], object]) -> None:
        if not self.settings.OPEN_FINANCE_SYNC_ENABLED:
            logger.debug("Scheduled %s skipped: sync is disabled", name)
            return

        try:
            with session_scope(self._session_factory) as db:
                result = duty(db)
            logger.info("Scheduled %s finished: %s", name, result)
        except SyncAlreadyRunningError:
            logger.info("Scheduled %s skipped: previous run still in progress", name)
        except Exception:
            logger.error("Scheduled %s failed", name, exc_info=True)
