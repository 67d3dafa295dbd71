"""Data access for prices, alert subscriptions and notifications.

The validator and the alert engine only see the Protocol interfaces below.
The SQLAlchemy implementations open one session per call, so a single
repository instance can be shared by concurrently processed alert groups.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market_engine.db.models import (
    AlertNotification as AlertNotificationModel,
    MarketPrice,
    PriceAlert,
)
from market_engine.detect.types import (
    AlertFrequency,
    AlertNotification,
    AlertSubscription,
    AlertType,
    NotificationStatus,
    PriceRecord,
    PriceStatus,
    Quality,
)


class DataAccessError(Exception):
    """The backing store could not complete a query."""


class PriceRepository(Protocol):
    """Read-only queries over historical price records."""

    async def find_recent_approved_prices(
        self,
        crop_type: str,
        location: str,
        quality: Optional[Quality] = None,
        *,
        limit: int = 10,
        exclude_expired: bool = False,
    ) -> list[PriceRecord]:
        """Most recent approved, verified prices, newest first."""
        ...

    async def find_seasonal_prices(
        self,
        crop_type: str,
        location: str,
        start: datetime,
        end: datetime,
    ) -> list[PriceRecord]:
        """Approved, verified prices with start <= effective_date < end."""
        ...


class AlertRepository(Protocol):
    """Alert subscriptions."""

    async def list_active_subscriptions(self) -> list[AlertSubscription]:
        ...

    async def update_last_triggered(
        self,
        subscription_id: str,
        triggered_at: datetime,
        expected_previous: Optional[datetime],
    ) -> bool:
        """Set last_triggered_at only if it still equals expected_previous."""
        ...


class NotificationSink(Protocol):
    """Persists outbound alert notifications."""

    async def create(self, notification: AlertNotification) -> None:
        ...

    async def count_pending(self, owner_id: str) -> int:
        ...

    async def delete_expired(
        self, before: datetime, statuses: Sequence[NotificationStatus]
    ) -> int:
        ...

    async def list_for_owner(
        self,
        owner_id: str,
        status: Optional[NotificationStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[AlertNotification], int]:
        ...

    async def update_status(
        self,
        owner_id: str,
        notification_ids: Sequence[str],
        status: NotificationStatus,
    ) -> int:
        ...


def _to_price_record(row: MarketPrice) -> PriceRecord:
    return PriceRecord(
        id=row.id,
        crop_type=row.crop_type,
        price_per_unit=row.price_per_unit,
        unit=row.unit,
        quality=Quality(row.quality),
        location=row.location,
        effective_date=row.effective_date,
        status=PriceStatus(row.status),
        is_verified=row.is_verified,
        source=row.source,
        expires_at=row.expiry_date,
    )


def _to_subscription(row: PriceAlert) -> AlertSubscription:
    return AlertSubscription(
        id=row.id,
        owner_id=row.user_id,
        crop_type=row.crop_type,
        location=row.location,
        quality=Quality(row.quality) if row.quality else None,
        alert_type=AlertType(row.alert_type),
        frequency=AlertFrequency(row.frequency),
        threshold=row.threshold,
        is_active=row.is_active,
        last_triggered_at=row.last_triggered,
    )


def _to_notification(row: AlertNotificationModel) -> AlertNotification:
    return AlertNotification(
        id=row.id,
        subscription_id=row.alert_id,
        owner_id=row.user_id,
        title=row.title,
        message=row.message,
        alert_type=AlertType(row.alert_type),
        crop_type=row.crop_type,
        location=row.location,
        old_price=row.old_price,
        new_price=row.new_price,
        price_change=row.price_change,
        status=NotificationStatus(row.status),
        created_at=row.created_at,
    )


class SqlPriceRepository:
    """PriceRepository backed by the market_prices table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def _comparable(self, query, crop_type: str, location: str):
        return query.where(
            MarketPrice.crop_type.icontains(crop_type, autoescape=True),
            MarketPrice.location.icontains(location, autoescape=True),
            MarketPrice.status == PriceStatus.APPROVED.value,
            MarketPrice.is_verified.is_(True),
        )

    async def find_recent_approved_prices(
        self,
        crop_type: str,
        location: str,
        quality: Optional[Quality] = None,
        *,
        limit: int = 10,
        exclude_expired: bool = False,
    ) -> list[PriceRecord]:
        query = self._comparable(select(MarketPrice), crop_type, location)
        if quality is not None:
            query = query.where(MarketPrice.quality == quality.value)
        if exclude_expired:
            query = query.where(
                or_(
                    MarketPrice.expiry_date.is_(None),
                    MarketPrice.expiry_date > datetime.utcnow(),
                )
            )
        query = query.order_by(MarketPrice.effective_date.desc()).limit(limit)

        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                return [_to_price_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to load recent prices: {e}") from e

    async def find_seasonal_prices(
        self,
        crop_type: str,
        location: str,
        start: datetime,
        end: datetime,
    ) -> list[PriceRecord]:
        query = (
            self._comparable(select(MarketPrice), crop_type, location)
            .where(
                MarketPrice.effective_date >= start,
                MarketPrice.effective_date < end,
            )
            .order_by(MarketPrice.effective_date.desc())
        )

        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                return [_to_price_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to load seasonal prices: {e}") from e


class SqlAlertRepository:
    """AlertRepository backed by the price_alerts table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_active_subscriptions(self) -> list[AlertSubscription]:
        query = (
            select(PriceAlert)
            .where(PriceAlert.is_active.is_(True))
            .order_by(PriceAlert.created_at.asc(), PriceAlert.id.asc())
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                return [_to_subscription(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to load active alerts: {e}") from e

    async def update_last_triggered(
        self,
        subscription_id: str,
        triggered_at: datetime,
        expected_previous: Optional[datetime],
    ) -> bool:
        if expected_previous is None:
            guard = PriceAlert.last_triggered.is_(None)
        else:
            guard = PriceAlert.last_triggered == expected_previous

        statement = (
            update(PriceAlert)
            .where(PriceAlert.id == subscription_id, guard)
            .values(last_triggered=triggered_at)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(statement)
                await db.commit()
        except SQLAlchemyError as e:
            raise DataAccessError(
                f"Failed to update alert {subscription_id}: {e}"
            ) from e

        return result.rowcount == 1


class SqlNotificationSink:
    """NotificationSink backed by the alert_notifications table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, notification: AlertNotification) -> None:
        row = AlertNotificationModel(
            id=notification.id,
            alert_id=notification.subscription_id,
            user_id=notification.owner_id,
            title=notification.title,
            message=notification.message,
            alert_type=notification.alert_type.value,
            crop_type=notification.crop_type,
            location=notification.location,
            old_price=notification.old_price,
            new_price=notification.new_price,
            price_change=notification.price_change,
            status=notification.status.value,
            created_at=notification.created_at or datetime.utcnow(),
        )
        try:
            async with self.session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to store notification: {e}") from e

    async def count_pending(self, owner_id: str) -> int:
        query = select(func.count(AlertNotificationModel.id)).where(
            AlertNotificationModel.user_id == owner_id,
            AlertNotificationModel.status == NotificationStatus.PENDING.value,
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to count notifications: {e}") from e

    async def delete_expired(
        self, before: datetime, statuses: Sequence[NotificationStatus]
    ) -> int:
        statement = delete(AlertNotificationModel).where(
            AlertNotificationModel.created_at < before,
            AlertNotificationModel.status.in_([s.value for s in statuses]),
        ).execution_options(synchronize_session=False)
        try:
            async with self.session_factory() as db:
                result = await db.execute(statement)
                await db.commit()
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to purge notifications: {e}") from e

        return result.rowcount or 0

    async def list_for_owner(
        self,
        owner_id: str,
        status: Optional[NotificationStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[AlertNotification], int]:
        conditions = [AlertNotificationModel.user_id == owner_id]
        if status is not None:
            conditions.append(AlertNotificationModel.status == status.value)

        query = (
            select(AlertNotificationModel)
            .where(*conditions)
            .order_by(AlertNotificationModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        count_query = select(func.count(AlertNotificationModel.id)).where(*conditions)

        try:
            async with self.session_factory() as db:
                rows = (await db.execute(query)).scalars().all()
                total = (await db.execute(count_query)).scalar() or 0
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to list notifications: {e}") from e

        return [_to_notification(row) for row in rows], total

    async def update_status(
        self,
        owner_id: str,
        notification_ids: Sequence[str],
        status: NotificationStatus,
    ) -> int:
        values: dict = {"status": status.value}
        if status == NotificationStatus.READ:
            values["read_at"] = datetime.utcnow()
        elif status == NotificationStatus.DISMISSED:
            values["dismissed_at"] = datetime.utcnow()

        statement = (
            update(AlertNotificationModel)
            .where(
                AlertNotificationModel.user_id == owner_id,
                AlertNotificationModel.id.in_(list(notification_ids)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(statement)
                await db.commit()
        except SQLAlchemyError as e:
            raise DataAccessError(f"Failed to update notifications: {e}") from e

        return result.rowcount or 0
