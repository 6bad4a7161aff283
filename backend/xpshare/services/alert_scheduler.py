"""APScheduler-based saved-search alert dispatcher.

Periodically looks at every alert-enabled saved search whose frequency
interval has elapsed, counts experiences created since its last alert and
records a dispatch. Delivery channels (mail, push) live outside this
service; a dispatch is the ``saved_search_alert_dispatched`` log event plus
the ``last_alert_sent_at`` stamp.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xpshare.models.base import utcnow
from xpshare.services.saved_search_service import SavedSearchService, filters_for
from xpshare.services.search_service import SearchService

logger = structlog.get_logger(__name__)

JOB_ID = "saved_search_alerts"


class AlertScheduler:
    """Runs the alert check on a fixed interval.

    Errors inside a run are logged and never stop the scheduler.
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        interval_minutes: int = 15,
    ):
        """Initialize alert scheduler.

        Args:
            db_session_factory: Async session factory for database access
            interval_minutes: How often due alerts are checked
        """
        self.db_session_factory = db_session_factory
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="alert_scheduler")

    def start(self) -> Optional[Job]:
        """Start the scheduler and register the alert job."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return None

        job = self.scheduler.add_job(
            func=self._run_wrapper,
            trigger=IntervalTrigger(
                minutes=self.interval_minutes,
                start_date=datetime.now(timezone.utc),
                timezone="UTC",
            ),
            id=JOB_ID,
            name="Dispatch saved-search alerts",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self.logger.info("scheduler_started", interval_minutes=self.interval_minutes)
        return job

    def stop(self) -> None:
        """Stop the scheduler, waiting for a running check to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def is_running(self) -> bool:
        return self.scheduler.running

    async def _run_wrapper(self) -> None:
        """Entry point APScheduler calls."""
        try:
            await self.dispatch_due_alerts()
        except Exception as e:
            self.logger.error("alert_job_failed", error=str(e), exc_info=True)

    async def dispatch_due_alerts(self, now: Optional[datetime] = None) -> int:
        """Check every due saved search once.

        Every checked search is stamped with ``now`` so the next check only
        counts experiences created afterwards.

        Returns:
            Number of alerts dispatched (searches with new matches)
        """
        now = now or utcnow()
        dispatched = 0

        async with self.db_session_factory() as db:
            saved_searches = SavedSearchService(db)
            search = SearchService(db)

            due = await saved_searches.due_alerts(now)
            self.logger.info("alert_check_started", due=len(due))

            for saved in due:
                new_matches = await search.count_new_matches(
                    filters_for(saved), since=saved.last_alert_sent_at
                )
                if new_matches:
                    dispatched += 1
                    self.logger.info(
                        "saved_search_alert_dispatched",
                        saved_search_id=str(saved.id),
                        user_id=str(saved.user_id),
                        frequency=saved.alert_frequency,
                        new_matches=new_matches,
                    )
                saved.last_alert_sent_at = now

            await db.commit()

        self.logger.info("alert_check_completed", checked=len(due), dispatched=dispatched)
        return dispatched
