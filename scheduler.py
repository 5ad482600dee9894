"""
Background auto-refresh scheduler.
Auto refresh is opt-in: nothing runs until start() is called through the API.
The job interval comes from the cadence planner unless overridden.
"""

import atexit
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

AUTO_REFRESH_JOB_ID = 'auto_refresh'


class AutoRefreshScheduler:
    """Runs a full-portfolio refresh on an interval job."""

    def __init__(self, scheduler, runner, refresh_service, quote_service,
                 job_timeout: Optional[float] = None):
        self.scheduler = scheduler
        self.runner = runner
        self.refresh_service = refresh_service
        self.quote_service = quote_service
        self.job_timeout = job_timeout
        self.symbols: List[str] = []
        self.frequency: Optional[float] = None
        self.enabled = False

    def start(self, symbols: List[str], frequency: Optional[float] = None,
              allow_oversized: bool = False) -> Dict:
        """
        Schedule automatic refreshes for symbols.

        Portfolios larger than the effective rate limit are refused unless
        allow_oversized is set; the returned dict always carries the plan.
        """
        symbols = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        if not symbols:
            raise ValueError("symbols must be a non-empty list")

        plan = self.quote_service.get_update_plan(len(symbols))
        logger.info(plan.recommendation)

        if not plan.can_auto_update and not allow_oversized:
            logger.warning(f"Portfolio too large ({len(symbols)}) for optimal auto-updates")
            return {
                'enabled': False,
                'message': 'Portfolio too large for optimal auto-updates - consider manual updates',
                'plan': plan.to_dict(),
            }

        if frequency is not None and frequency < plan.frequency_seconds:
            raise ValueError(
                f"frequency must be at least {plan.frequency_seconds:g}s for {len(symbols)} symbols"
            )

        self.symbols = symbols
        self.frequency = float(frequency or plan.frequency_seconds)
        self.scheduler.add_job(
            self._run_refresh,
            'interval',
            seconds=self.frequency,
            id=AUTO_REFRESH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.enabled = True
        logger.info(f"Starting auto-update every {self.frequency:g}s for {len(symbols)} symbols")

        return {'enabled': True, 'frequency_seconds': self.frequency, 'plan': plan.to_dict()}

    def stop(self) -> None:
        if self.scheduler.get_job(AUTO_REFRESH_JOB_ID):
            self.scheduler.remove_job(AUTO_REFRESH_JOB_ID)
        if self.enabled:
            logger.info("Auto-update stopped")
        self.enabled = False

    def status(self) -> Dict:
        job = self.scheduler.get_job(AUTO_REFRESH_JOB_ID)
        next_run = getattr(job, 'next_run_time', None) if job else None
        return {
            'enabled': self.enabled,
            'frequency_seconds': self.frequency,
            'symbols': self.symbols,
            'next_run': next_run.isoformat() if next_run else None,
        }

    def _run_refresh(self):
        if not self.symbols:
            return None
        try:
            result = self.runner.run(self.refresh_service.refresh_all(self.symbols), self.job_timeout)
        except Exception:
            logger.exception("Auto refresh failed")
            return None
        if result.get('errors'):
            logger.warning(f"Auto refresh finished with errors: {result['errors'][:3]}")
        return result


def start_scheduler(app):
    """
    Initialize the background scheduler without any jobs.
    Jobs are added when auto refresh is enabled through the API.
    """

    scheduler = BackgroundScheduler(daemon=True)
    scheduler.start()

    auto_refresh = AutoRefreshScheduler(
        scheduler,
        app.quote_runner,
        app.refresh_service,
        app.quote_service,
    )
    logger.info("Scheduler started (auto refresh disabled until requested)")

    # Shut down scheduler when exiting the app
    atexit.register(lambda: scheduler.shutdown(wait=False) if scheduler.running else None)

    return auto_refresh
