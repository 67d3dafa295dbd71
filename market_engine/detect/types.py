"""Domain types shared by the validator and the alert engine."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class Quality(str, Enum):
    """Produce quality grade."""

    PREMIUM = "PREMIUM"
    STANDARD = "STANDARD"
    ECONOMY = "ECONOMY"


class PriceStatus(str, Enum):
    """Moderation status of a submitted price."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class AlertType(str, Enum):
    """Kinds of price movement a subscription can watch for."""

    PRICE_INCREASE = "PRICE_INCREASE"
    PRICE_DECREASE = "PRICE_DECREASE"
    PRICE_VOLATILITY = "PRICE_VOLATILITY"
    REGIONAL_DIFFERENCE = "REGIONAL_DIFFERENCE"
    QUALITY_OPPORTUNITY = "QUALITY_OPPORTUNITY"
    SEASONAL_TREND = "SEASONAL_TREND"


class AlertFrequency(str, Enum):
    """How often a single subscription may fire."""

    IMMEDIATE = "IMMEDIATE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class NotificationStatus(str, Enum):
    """Read state of an alert notification."""

    PENDING = "PENDING"
    READ = "READ"
    DISMISSED = "DISMISSED"


class MarketTrend(str, Enum):
    """Direction of recent regional prices."""

    UP = "UP"
    DOWN = "DOWN"
    STABLE = "STABLE"


class SuggestionType(str, Enum):
    """Kinds of correction suggestions returned by the validator."""

    PRICE_RANGE = "PRICE_RANGE"
    QUALITY_ADJUSTMENT = "QUALITY_ADJUSTMENT"
    LOCATION_COMPARISON = "LOCATION_COMPARISON"


# Expected price relative to the regional average, per grade
QUALITY_MULTIPLIERS: dict[Quality, Decimal] = {
    Quality.PREMIUM: Decimal("1.3"),
    Quality.STANDARD: Decimal("1.0"),
    Quality.ECONOMY: Decimal("0.7"),
}

ANY_QUALITY = "ANY"


@dataclass(frozen=True)
class PriceRecord:
    """One historical commodity price observation."""

    crop_type: str
    price_per_unit: Decimal
    unit: str
    quality: Quality
    location: str
    effective_date: datetime
    status: PriceStatus = PriceStatus.APPROVED
    is_verified: bool = True
    id: Optional[str] = None
    source: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_comparable(self) -> bool:
        """Only approved and verified records take part in comparisons."""
        return self.status == PriceStatus.APPROVED and self.is_verified


@dataclass
class AlertSubscription:
    """A user's standing request to be notified of price movements."""

    id: str
    owner_id: str
    crop_type: str
    location: str
    alert_type: AlertType
    frequency: AlertFrequency
    threshold: float  # Percent
    quality: Optional[Quality] = None  # None matches any grade
    is_active: bool = True
    last_triggered_at: Optional[datetime] = None

    def __post_init__(self):
        if self.threshold <= 0:
            raise ValueError(f"Alert threshold must be positive, got {self.threshold}")


@dataclass
class AlertNotification:
    """A notification produced by the alert engine."""

    id: str
    subscription_id: str
    owner_id: str
    title: str
    message: str
    alert_type: AlertType
    crop_type: str
    location: str
    old_price: Decimal
    new_price: Decimal
    price_change: Decimal
    status: NotificationStatus = NotificationStatus.PENDING
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PriceChange:
    """Change between two consecutive approved prices."""

    crop_type: str
    location: str
    quality: Quality
    old_price: Decimal
    new_price: Decimal
    price_change: Decimal
    change_percent: float
    effective_date: datetime

    @property
    def is_increase(self) -> bool:
        return self.change_percent > 0


def subscription_group_key(subscription: AlertSubscription) -> tuple[str, str, str]:
    """Key used to share one price query between equivalent subscriptions."""
    quality = subscription.quality.value if subscription.quality else ANY_QUALITY
    return (subscription.crop_type, subscription.location, quality)
