"""Periodic price change detection and alert notification.

One detection cycle loads every active subscription, groups them by
crop/location/quality so each distinct combination is queried once, and
fires notifications for subscriptions whose threshold, frequency and
alert-type rules accept a detected change.
"""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from market_engine import metrics
from market_engine.config import settings
from market_engine.db.repositories import (
    AlertRepository,
    NotificationSink,
    PriceRepository,
)
from market_engine.detect.price_changes import (
    calculate_price_changes,
    change_matches_subscription,
    group_subscriptions,
)
from market_engine.detect.rules import should_trigger
from market_engine.detect.types import (
    ANY_QUALITY,
    AlertNotification,
    AlertSubscription,
    NotificationStatus,
    PriceChange,
    Quality,
)
from market_engine.logging_config import get_logger
from market_engine.notify.formatters import format_alert_message, format_alert_title

logger = logging.getLogger(__name__)

PURGEABLE_STATUSES = (NotificationStatus.READ, NotificationStatus.DISMISSED)


@dataclass
class DetectionCycleSummary:
    """Counters for one detection cycle."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    subscriptions: int = 0
    groups: int = 0
    groups_processed: int = 0
    groups_skipped: int = 0
    groups_failed: int = 0
    notifications_created: int = 0
    timed_out: bool = False
    errors: list[str] = field(default_factory=list)


class AlertEngine:
    """
    Detects significant price changes and notifies subscribed users.

    Holds no mutable state between cycles; everything is read from and
    written to the injected repositories.
    """

    def __init__(
        self,
        prices: PriceRepository,
        alerts: AlertRepository,
        notifications: NotificationSink,
        *,
        max_concurrent_groups: Optional[int] = None,
        cycle_timeout_seconds: Optional[float] = None,
        history_limit: Optional[int] = None,
        noise_floor_percent: Optional[float] = None,
        retention_days: Optional[int] = None,
    ):
        """
        Initialize alert engine.

        Args:
            prices: Price repository
            alerts: Alert subscription repository
            notifications: Notification sink
            max_concurrent_groups: Groups processed in parallel
            cycle_timeout_seconds: No new group work starts after this
            history_limit: Recent prices fetched per group
            noise_floor_percent: Price changes at or below this are ignored
            retention_days: Age after which read/dismissed notifications are purged
        """
        self.prices = prices
        self.alerts = alerts
        self.notifications = notifications
        self.max_concurrent_groups = max_concurrent_groups or settings.max_concurrent_alert_groups
        self.cycle_timeout_seconds = (
            cycle_timeout_seconds
            if cycle_timeout_seconds is not None
            else settings.detection_cycle_timeout_seconds
        )
        self.history_limit = history_limit or settings.price_history_limit
        self.noise_floor_percent = (
            noise_floor_percent
            if noise_floor_percent is not None
            else settings.price_change_noise_floor_percent
        )
        self.retention_days = retention_days or settings.notification_retention_days

    async def run_detection_cycle(self, now: Optional[datetime] = None) -> DetectionCycleSummary:
        """
        Run one detection cycle over all active subscriptions.

        Failures in a single group or subscription are logged and do not
        stop the cycle. Only a failure to list subscriptions propagates.

        Args:
            now: Reference time for frequency gating (defaults to utcnow)

        Returns:
            DetectionCycleSummary
        """
        started = time.monotonic()
        summary = DetectionCycleSummary(started_at=now or datetime.utcnow())

        try:
            subscriptions = await self.alerts.list_active_subscriptions()
        except Exception:
            metrics.record_detection_cycle(False, time.monotonic() - started, 0)
            raise

        summary.subscriptions = len(subscriptions)
        if not subscriptions:
            logger.info("No active price alerts found")
            summary.completed_at = datetime.utcnow()
            metrics.record_detection_cycle(True, time.monotonic() - started, 0)
            return summary

        groups = group_subscriptions(subscriptions)
        summary.groups = len(groups)
        logger.info(
            f"Starting price change detection: {len(subscriptions)} active alerts "
            f"in {len(groups)} groups"
        )

        deadline = started + self.cycle_timeout_seconds
        semaphore = asyncio.Semaphore(self.max_concurrent_groups)

        async def run_group(key, members):
            async with semaphore:
                if time.monotonic() >= deadline:
                    summary.timed_out = True
                    metrics.record_group("timed_out")
                    return
                await self._process_group(key, members, summary, now)

        await asyncio.gather(*(run_group(key, members) for key, members in groups.items()))

        if summary.timed_out:
            logger.warning(
                f"Detection cycle exceeded {self.cycle_timeout_seconds}s; "
                "remaining groups were not processed"
            )

        summary.completed_at = datetime.utcnow()
        metrics.record_detection_cycle(True, time.monotonic() - started, len(subscriptions))
        logger.info(
            f"Price change detection completed: {summary.groups_processed} groups processed, "
            f"{summary.groups_skipped} skipped, {summary.groups_failed} failed, "
            f"{summary.notifications_created} notifications created"
        )
        return summary

    async def _process_group(
        self,
        key: tuple[str, str, str],
        subscriptions: list[AlertSubscription],
        summary: DetectionCycleSummary,
        now: Optional[datetime],
    ) -> None:
        crop_type, location, quality = key
        group_logger = get_logger(__name__, crop_type=crop_type, location=location, quality=quality)

        try:
            records = await self.prices.find_recent_approved_prices(
                crop_type,
                location,
                None if quality == ANY_QUALITY else Quality(quality),
                limit=self.history_limit,
            )
            if len(records) < 2:
                summary.groups_skipped += 1
                metrics.record_group("skipped")
                return

            changes = calculate_price_changes(records, self.noise_floor_percent)
            for subscription in subscriptions:
                summary.notifications_created += await self._check_subscription(
                    subscription, changes, summary, now
                )

            summary.groups_processed += 1
            metrics.record_group("processed")
        except Exception as e:
            summary.groups_failed += 1
            summary.errors.append(f"{'|'.join(key)}: {e}")
            metrics.record_group("failed")
            group_logger.error(f"Error processing alert group {'|'.join(key)}: {e}", exc_info=True)

    async def _check_subscription(
        self,
        subscription: AlertSubscription,
        changes: list[PriceChange],
        summary: DetectionCycleSummary,
        now: Optional[datetime],
    ) -> int:
        """Fire the subscription for each accepted change. Returns notifications created."""
        created = 0
        subscription_logger = get_logger(
            __name__, subscription_id=subscription.id, owner_id=subscription.owner_id
        )
        try:
            for change in changes:
                if not change_matches_subscription(change, subscription):
                    continue

                fired_at = now or datetime.utcnow()
                if not should_trigger(subscription, change, fired_at):
                    continue

                # Claim the subscription before notifying so overlapping cycles
                # cannot both fire it.
                claimed = await self.alerts.update_last_triggered(
                    subscription.id, fired_at, subscription.last_triggered_at
                )
                if not claimed:
                    subscription_logger.info(
                        f"Alert {subscription.id} was triggered elsewhere or removed; skipping"
                    )
                    break

                subscription = dataclasses.replace(subscription, last_triggered_at=fired_at)
                await self._create_notification(subscription, change, fired_at)
                created += 1
        except Exception as e:
            summary.errors.append(f"alert {subscription.id}: {e}")
            subscription_logger.error(f"Error checking alert {subscription.id}: {e}", exc_info=True)

        return created

    async def _create_notification(
        self,
        subscription: AlertSubscription,
        change: PriceChange,
        created_at: datetime,
    ) -> AlertNotification:
        notification = AlertNotification(
            id=uuid4().hex,
            subscription_id=subscription.id,
            owner_id=subscription.owner_id,
            title=format_alert_title(subscription.alert_type, change),
            message=format_alert_message(subscription, change),
            alert_type=subscription.alert_type,
            crop_type=change.crop_type,
            location=change.location,
            old_price=change.old_price,
            new_price=change.new_price,
            price_change=change.price_change,
            status=NotificationStatus.PENDING,
            created_at=created_at,
        )
        await self.notifications.create(notification)
        metrics.record_notification_created(subscription.alert_type.value)
        logger.info(f"Created notification for alert {subscription.id}: {notification.title}")

        # TODO: dispatch through the owner's email/push/SMS channels once a
        # delivery service exists; notifications are only stored for now.
        return notification

    async def unread_notification_count(self, owner_id: str) -> int:
        """Count PENDING notifications for a user."""
        return await self.notifications.count_pending(owner_id)

    async def purge_old_notifications(self, now: Optional[datetime] = None) -> int:
        """
        Delete read or dismissed notifications older than the retention window.

        Pending notifications are kept regardless of age.

        Returns:
            Number of notifications deleted
        """
        cutoff = (now or datetime.utcnow()) - timedelta(days=self.retention_days)
        deleted = await self.notifications.delete_expired(cutoff, PURGEABLE_STATUSES)
        metrics.record_notifications_purged(deleted)
        logger.info(f"Cleaned up {deleted} old notifications (older than {cutoff.isoformat()})")
        return deleted
