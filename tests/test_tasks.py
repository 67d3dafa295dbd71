"""Tests for the background job runner and scheduler wiring."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from market_engine.db.models import AlertNotification, JobRun, MarketPrice, PriceAlert
from market_engine.db.repositories import DataAccessError
from market_engine.worker.scheduler import setup_scheduler
from market_engine.worker.tasks import NOTIFICATION_PURGE_JOB, PRICE_DETECTION_JOB, TaskRunner


async def seed_rising_prices(session_factory):
    now = datetime.utcnow()
    async with session_factory() as db:
        db.add_all([
            MarketPrice(
                id="p1", crop_type="Maize", price_per_unit=Decimal("100"), unit="kg",
                quality="STANDARD", location="Kampala", status="APPROVED",
                is_verified=True, effective_date=now - timedelta(days=1),
            ),
            MarketPrice(
                id="p2", crop_type="Maize", price_per_unit=Decimal("105"), unit="kg",
                quality="STANDARD", location="Kampala", status="APPROVED",
                is_verified=True, effective_date=now,
            ),
            PriceAlert(
                id="a1", user_id="user-1", crop_type="maize", location="kampala",
                alert_type="PRICE_INCREASE", frequency="IMMEDIATE", threshold=4.0,
            ),
        ])
        await db.commit()


@pytest.mark.asyncio
async def test_detection_run_is_recorded(session_factory):
    await seed_rising_prices(session_factory)
    runner = TaskRunner(session_factory)

    job_run_id = await runner.run_price_detection(trigger="manual")

    async with session_factory() as db:
        job_run = await db.get(JobRun, job_run_id)
        notifications = (await db.execute(select(AlertNotification))).scalars().all()
        alert = await db.get(PriceAlert, "a1")

    assert job_run.job_type == PRICE_DETECTION_JOB
    assert job_run.trigger == "manual"
    assert job_run.status == "completed"
    assert job_run.subscriptions_checked == 1
    assert job_run.notifications_created == 1
    assert job_run.duration_seconds is not None
    assert len(notifications) == 1
    assert notifications[0].alert_id == "a1"
    assert notifications[0].status == "PENDING"
    assert alert.last_triggered is not None


@pytest.mark.asyncio
async def test_second_run_does_not_duplicate_daily_alert(session_factory):
    await seed_rising_prices(session_factory)
    async with session_factory() as db:
        alert = await db.get(PriceAlert, "a1")
        alert.frequency = "DAILY"
        await db.commit()
    runner = TaskRunner(session_factory)

    await runner.run_price_detection()
    await runner.run_price_detection()

    async with session_factory() as db:
        notifications = (await db.execute(select(AlertNotification))).scalars().all()
    assert len(notifications) == 1


@pytest.mark.asyncio
async def test_failed_run_is_recorded_not_raised(session_factory):
    class BrokenEngine:
        async def run_detection_cycle(self):
            raise DataAccessError("database unavailable")

    runner = TaskRunner(session_factory)
    runner.engine = BrokenEngine()

    job_run_id = await runner.run_price_detection()

    async with session_factory() as db:
        job_run = await db.get(JobRun, job_run_id)
    assert job_run.status == "failed"
    assert "database unavailable" in job_run.error_message


@pytest.mark.asyncio
async def test_purge_failure_keeps_detection_results(session_factory):
    await seed_rising_prices(session_factory)
    runner = TaskRunner(session_factory)

    async def broken_purge(now=None):
        raise DataAccessError("delete failed")

    runner.engine.purge_old_notifications = broken_purge

    job_run_id = await runner.run_price_detection()

    async with session_factory() as db:
        job_run = await db.get(JobRun, job_run_id)
        notifications = (await db.execute(select(AlertNotification))).scalars().all()
    assert job_run.status == "completed"
    assert job_run.subscriptions_checked == 1
    assert job_run.notifications_created == 1
    assert job_run.notifications_purged == 0
    assert "Notification purge failed: delete failed" in job_run.error_message
    assert len(notifications) == 1


@pytest.mark.asyncio
async def test_purge_job(session_factory):
    runner = TaskRunner(session_factory)

    job_run_id = await runner.purge_notifications(trigger="manual")

    async with session_factory() as db:
        job_run = await db.get(JobRun, job_run_id)
    assert job_run.job_type == NOTIFICATION_PURGE_JOB
    assert job_run.status == "completed"
    assert job_run.notifications_purged == 0


def test_scheduler_jobs():
    scheduler = setup_scheduler(TaskRunner())

    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {"price_detection", "notification_purge"}
    assert jobs["price_detection"].max_instances == 1
