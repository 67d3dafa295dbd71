"""Trigger rules deciding whether an alert subscription fires."""

from datetime import datetime
from typing import Optional

from market_engine.detect.types import (
    AlertFrequency,
    AlertSubscription,
    AlertType,
    PriceChange,
)

# Minimum hours between two firings of the same subscription
FREQUENCY_MIN_HOURS: dict[AlertFrequency, float] = {
    AlertFrequency.IMMEDIATE: 0,
    AlertFrequency.DAILY: 24,
    AlertFrequency.WEEKLY: 168,
    AlertFrequency.MONTHLY: 720,
}


def passes_threshold(subscription: AlertSubscription, change: PriceChange) -> bool:
    """Change magnitude must reach the subscription threshold."""
    return abs(change.change_percent) >= subscription.threshold


def passes_frequency_gate(
    subscription: AlertSubscription,
    now: Optional[datetime] = None,
) -> bool:
    """
    Throttle a subscription according to its frequency.

    Args:
        subscription: Alert subscription
        now: Current time (defaults to utcnow)

    Returns:
        True if enough time has passed since the subscription last fired
    """
    if subscription.last_triggered_at is None:
        return True
    if subscription.frequency == AlertFrequency.IMMEDIATE:
        return True

    now = now or datetime.utcnow()
    hours_since = (now - subscription.last_triggered_at).total_seconds() / 3600
    return hours_since >= FREQUENCY_MIN_HOURS[subscription.frequency]


def passes_alert_type_gate(alert_type: AlertType, change: PriceChange) -> bool:
    """Directional alerts only fire on a move in their direction."""
    if alert_type == AlertType.PRICE_INCREASE:
        return change.change_percent > 0
    if alert_type == AlertType.PRICE_DECREASE:
        return change.change_percent < 0
    if alert_type in (
        AlertType.PRICE_VOLATILITY,
        # No regional, quality or seasonal analysis yet; these fire on any
        # significant move like a volatility alert.
        AlertType.REGIONAL_DIFFERENCE,
        AlertType.QUALITY_OPPORTUNITY,
        AlertType.SEASONAL_TREND,
    ):
        return True
    raise ValueError(f"Unhandled alert type: {alert_type}")


def should_trigger(
    subscription: AlertSubscription,
    change: PriceChange,
    now: Optional[datetime] = None,
) -> bool:
    """Apply threshold, frequency and alert-type gates in order."""
    if not passes_threshold(subscription, change):
        return False
    if not passes_frequency_gate(subscription, now):
        return False
    return passes_alert_type_gate(subscription.alert_type, change)
