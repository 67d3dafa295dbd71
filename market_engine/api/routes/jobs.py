"""Scheduled job routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market_engine.api.deps import get_database, get_task_runner, require_admin_api_key
from market_engine.db.models import JobRun
from market_engine.worker.tasks import PRICE_DETECTION_JOB, TaskRunner

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


class JobRunResponse(BaseModel):
    id: int
    job_type: str
    trigger: Optional[str]
    status: str
    started_at: datetime
    completed_at: Optional[datetime]
    subscriptions_checked: int
    groups_processed: int
    groups_failed: int
    notifications_created: int
    notifications_purged: int
    error_message: Optional[str]

    class Config:
        from_attributes = True


class JobStatusResponse(BaseModel):
    status: str
    last_run: Optional[JobRunResponse] = None


@router.post(
    "/price-detection",
    response_model=JobRunResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def trigger_price_detection(
    runner: TaskRunner = Depends(get_task_runner),
    db: AsyncSession = Depends(get_database),
):
    """Run price change detection now."""
    job_run_id = await runner.run_price_detection(trigger="manual")
    job_run = await db.get(JobRun, job_run_id) if job_run_id is not None else None
    if job_run is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Price change detection ran but could not be recorded",
        )
    return job_run


@router.get("/price-detection", response_model=JobStatusResponse)
async def price_detection_status(db: AsyncSession = Depends(get_database)):
    """Report the most recent price detection run."""
    result = await db.execute(
        select(JobRun)
        .where(JobRun.job_type == PRICE_DETECTION_JOB)
        .order_by(JobRun.started_at.desc(), JobRun.id.desc())
        .limit(1)
    )
    job_run = result.scalar_one_or_none()
    if job_run is None:
        return JobStatusResponse(status="never_run")
    return JobStatusResponse(status=job_run.status, last_run=job_run)
