"""FastAPI dependencies."""

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from market_engine.config import settings
from market_engine.db.repositories import SqlNotificationSink, SqlPriceRepository
from market_engine.db.session import AsyncSessionLocal, get_db
from market_engine.detect.alert_engine import AlertEngine
from market_engine.detect.validator import PriceValidator
from market_engine.worker.tasks import TaskRunner, build_alert_engine, task_runner


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_price_validator() -> PriceValidator:
    """Dependency for the price validator."""
    return PriceValidator(SqlPriceRepository(AsyncSessionLocal))


def get_alert_engine() -> AlertEngine:
    """Dependency for the alert engine."""
    return build_alert_engine(AsyncSessionLocal)


def get_notification_sink() -> SqlNotificationSink:
    """Dependency for notification storage."""
    return SqlNotificationSink(AsyncSessionLocal)


def get_task_runner() -> TaskRunner:
    """Dependency for the shared task runner."""
    return task_runner


async def require_admin_api_key(
    x_admin_api_key: str = Header(..., alias="X-Admin-API-Key")
) -> None:
    """
    Dependency to require admin API key for protected endpoints.

    Args:
        x_admin_api_key: Admin API key from X-Admin-API-Key header

    Raises:
        HTTPException: 503 if no key is configured, 403 if invalid
    """
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured"
        )

    if x_admin_api_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API key"
        )
