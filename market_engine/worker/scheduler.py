"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from market_engine.config import settings
from market_engine.worker.tasks import TaskRunner, task_runner

logger = logging.getLogger(__name__)


def setup_scheduler(runner: TaskRunner = task_runner) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Price change detection runs every settings.detection_interval_minutes
    - Old notifications are purged daily at settings.notification_purge_hour (UTC)

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    detection_interval = max(1, int(settings.detection_interval_minutes))

    scheduler.add_job(
        runner.run_price_detection,
        IntervalTrigger(minutes=detection_interval),
        id="price_detection",
        name="Detect price changes and notify subscribers",
        max_instances=1,  # Prevent overlapping cycles
        coalesce=True,
        misfire_grace_time=300,
        replace_existing=True,
    )

    scheduler.add_job(
        runner.purge_notifications,
        CronTrigger(hour=settings.notification_purge_hour, minute=0),
        id="notification_purge",
        name="Purge old read/dismissed notifications",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: price detection every %d minutes, "
        "notification purge daily at %02d:00 UTC",
        detection_interval,
        settings.notification_purge_hour,
    )

    return scheduler
