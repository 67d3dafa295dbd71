"""Background tasks for price alert detection and notification upkeep."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market_engine import metrics
from market_engine.db.models import JobRun
from market_engine.db.repositories import (
    SqlAlertRepository,
    SqlNotificationSink,
    SqlPriceRepository,
)
from market_engine.db.session import AsyncSessionLocal
from market_engine.detect.alert_engine import AlertEngine

logger = logging.getLogger(__name__)

PRICE_DETECTION_JOB = "price_detection"
NOTIFICATION_PURGE_JOB = "notification_purge"


def build_alert_engine(session_factory: async_sessionmaker[AsyncSession]) -> AlertEngine:
    """Wire an AlertEngine to the SQL repositories."""
    return AlertEngine(
        prices=SqlPriceRepository(session_factory),
        alerts=SqlAlertRepository(session_factory),
        notifications=SqlNotificationSink(session_factory),
    )


class TaskRunner:
    """
    Runner for scheduled jobs.

    Every run is recorded as a JobRun row. Errors are logged and stored on
    the JobRun; they never propagate to the scheduler.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or AsyncSessionLocal
        self.engine = build_alert_engine(self.session_factory)

    async def _start_run(self, job_type: str, trigger: str) -> Optional[int]:
        try:
            async with self.session_factory() as db:
                job_run = JobRun(
                    job_type=job_type,
                    trigger=trigger,
                    status="running",
                    started_at=datetime.utcnow(),
                )
                db.add(job_run)
                await db.commit()
                await db.refresh(job_run)
                return job_run.id
        except Exception as e:
            logger.warning(f"Could not record start of {job_type} run: {e}")
            return None

    async def _finish_run(self, job_run_id: Optional[int], status: str, **counters) -> None:
        if job_run_id is None:
            return
        try:
            async with self.session_factory() as db:
                job_run = await db.get(JobRun, job_run_id)
                if job_run:
                    job_run.status = status
                    job_run.completed_at = datetime.utcnow()
                    for name, value in counters.items():
                        setattr(job_run, name, value)
                    await db.commit()
        except Exception as e:
            logger.warning(f"Could not record end of run {job_run_id}: {e}")

    async def run_price_detection(self, trigger: str = "scheduled") -> Optional[int]:
        """
        Run a detection cycle followed by the notification purge.

        Args:
            trigger: Trigger type ("scheduled" | "manual")

        Returns:
            JobRun id, or None if the run could not be recorded
        """
        logger.info(f"Starting price change detection job (trigger: {trigger})")
        job_run_id = await self._start_run(PRICE_DETECTION_JOB, trigger)

        try:
            summary = await self.engine.run_detection_cycle()
        except Exception as e:
            logger.error(f"Price change detection job failed: {e}", exc_info=True)
            metrics.record_scheduler_run(PRICE_DETECTION_JOB, success=False)
            await self._finish_run(job_run_id, "failed", error_message=str(e)[:500])
            return job_run_id

        # A failed purge does not discard the cycle results
        purged = 0
        purge_error = None
        try:
            purged = await self.engine.purge_old_notifications()
        except Exception as e:
            logger.error(f"Notification purge after detection failed: {e}", exc_info=True)
            metrics.record_scheduler_run(NOTIFICATION_PURGE_JOB, success=False)
            purge_error = f"Notification purge failed: {e}"[:500]

        error_message = "\n".join(summary.errors[:5]) if summary.errors else None
        if summary.timed_out:
            error_message = "Cycle timed out before all groups were processed\n" + (error_message or "")
        if purge_error:
            error_message = "\n".join(filter(None, [error_message, purge_error]))

        await self._finish_run(
            job_run_id,
            "completed",
            subscriptions_checked=summary.subscriptions,
            groups_processed=summary.groups_processed,
            groups_failed=summary.groups_failed,
            notifications_created=summary.notifications_created,
            notifications_purged=purged,
            error_message=error_message,
        )
        metrics.record_scheduler_run(PRICE_DETECTION_JOB, success=True)
        logger.info("Price change detection job completed successfully")
        return job_run_id

    async def purge_notifications(self, trigger: str = "scheduled") -> Optional[int]:
        """Delete old read/dismissed notifications."""
        job_run_id = await self._start_run(NOTIFICATION_PURGE_JOB, trigger)
        try:
            purged = await self.engine.purge_old_notifications()
        except Exception as e:
            logger.error(f"Notification purge failed: {e}", exc_info=True)
            metrics.record_scheduler_run(NOTIFICATION_PURGE_JOB, success=False)
            await self._finish_run(job_run_id, "failed", error_message=str(e)[:500])
            return job_run_id

        await self._finish_run(job_run_id, "completed", notifications_purged=purged)
        metrics.record_scheduler_run(NOTIFICATION_PURGE_JOB, success=True)
        return job_run_id


task_runner = TaskRunner()
