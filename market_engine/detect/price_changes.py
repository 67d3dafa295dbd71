"""Sequential price change detection for alert groups."""

from collections.abc import Iterable

from market_engine.detect.types import (
    AlertSubscription,
    PriceChange,
    PriceRecord,
    subscription_group_key,
)

DEFAULT_NOISE_FLOOR_PERCENT = 1.0


def calculate_price_changes(
    records: list[PriceRecord],
    noise_floor_percent: float = DEFAULT_NOISE_FLOOR_PERCENT,
) -> list[PriceChange]:
    """
    Compute changes between adjacent prices.

    Args:
        records: Prices ordered newest first
        noise_floor_percent: Changes with |percent| at or below this are dropped

    Returns:
        PriceChange list, newest first
    """
    changes = []
    for newer, older in zip(records, records[1:]):
        if older.price_per_unit == 0:
            continue

        price_change = newer.price_per_unit - older.price_per_unit
        change_percent = float(price_change / older.price_per_unit * 100)
        if abs(change_percent) <= noise_floor_percent:
            continue

        changes.append(
            PriceChange(
                crop_type=newer.crop_type,
                location=newer.location,
                quality=newer.quality,
                old_price=older.price_per_unit,
                new_price=newer.price_per_unit,
                price_change=price_change,
                change_percent=change_percent,
                effective_date=newer.effective_date,
            )
        )
    return changes


def change_matches_subscription(change: PriceChange, subscription: AlertSubscription) -> bool:
    """Crop and location match as case-insensitive substrings; quality exactly or any."""
    if subscription.crop_type.lower() not in change.crop_type.lower():
        return False
    if subscription.location.lower() not in change.location.lower():
        return False
    return subscription.quality is None or change.quality == subscription.quality


def group_subscriptions(
    subscriptions: Iterable[AlertSubscription],
) -> dict[tuple[str, str, str], list[AlertSubscription]]:
    """Group subscriptions sharing crop, location and quality (or ANY)."""
    groups: dict[tuple[str, str, str], list[AlertSubscription]] = {}
    for subscription in subscriptions:
        groups.setdefault(subscription_group_key(subscription), []).append(subscription)
    return groups
