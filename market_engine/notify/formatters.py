"""Notification text for triggered price alerts.

Titles and recommendations are looked up per alert type in
``ALERT_TEMPLATES`` so wording changes stay out of the engine.
"""

from dataclasses import dataclass
from typing import Optional

from market_engine.detect.types import AlertSubscription, AlertType, PriceChange


@dataclass(frozen=True)
class AlertTemplate:
    """Presentation template for one alert type."""

    label: str
    title: str
    on_increase: str
    on_decrease: str
    # Direction the alert type watches for; None for non-directional types
    expects_increase: Optional[bool] = None


ALERT_TEMPLATES: dict[AlertType, AlertTemplate] = {
    AlertType.PRICE_INCREASE: AlertTemplate(
        label="Price Increase Alert",
        title="{crop} prices {movement} {percent:.1f}% in {location}",
        on_increase="Consider if this is a good time to sell or if you should wait for better prices.",
        on_decrease="This is a price decrease, not the increase you are watching for.",
        expects_increase=True,
    ),
    AlertType.PRICE_DECREASE: AlertTemplate(
        label="Price Decrease Alert",
        title="{crop} prices {movement} {percent:.1f}% in {location}",
        on_increase="This is a price increase, not the decrease you are watching for.",
        on_decrease="This might be a good opportunity to buy or stock up.",
        expects_increase=False,
    ),
    AlertType.PRICE_VOLATILITY: AlertTemplate(
        label="Price Volatility Alert",
        title="{crop} price volatility detected in {location}",
        on_increase="Prices are moving quickly; consider waiting for the market to settle before selling.",
        on_decrease="Prices are moving quickly; consider waiting for the market to settle before buying.",
    ),
    AlertType.REGIONAL_DIFFERENCE: AlertTemplate(
        label="Regional Price Difference",
        title="{crop} regional price alert for {location}",
        on_increase="Compare with nearby markets before selling elsewhere.",
        on_decrease="Nearby markets may currently offer better selling prices.",
    ),
    AlertType.QUALITY_OPPORTUNITY: AlertTemplate(
        label="Quality Opportunity Alert",
        title="{crop} quality opportunity in {location}",
        on_increase="Higher prices may reward sorting and selling your best grade now.",
        on_decrease="Lower prices may make higher grades affordable to buy now.",
    ),
    AlertType.SEASONAL_TREND: AlertTemplate(
        label="Seasonal Trend Alert",
        title="{crop} seasonal trend alert for {location}",
        on_increase="Prices are rising; check how this compares with the usual seasonal pattern.",
        on_decrease="Prices are falling; check how this compares with the usual seasonal pattern.",
    ),
}


def format_alert_title(alert_type: AlertType, change: PriceChange) -> str:
    """
    Build a short notification title.

    Args:
        alert_type: Subscription alert type
        change: Price change that triggered the alert

    Returns:
        Title string
    """
    template = ALERT_TEMPLATES[alert_type]
    return template.title.format(
        crop=change.crop_type,
        location=change.location,
        movement="up" if change.is_increase else "down",
        percent=abs(change.change_percent),
    )


def format_alert_message(subscription: AlertSubscription, change: PriceChange) -> str:
    """
    Build the multi-line notification body.

    States the actual direction of the move. When a directional alert
    fires on a move the other way, the message says so explicitly.

    Args:
        subscription: Subscription that fired
        change: Price change that triggered the alert

    Returns:
        Message string
    """
    template = ALERT_TEMPLATES[subscription.alert_type]
    direction = "increase" if change.is_increase else "decrease"
    sign = "+" if change.change_percent > 0 else ""

    lines = [
        f"{template.label}: {change.crop_type} prices in {change.location} have changed significantly.",
        "",
        f"Previous price: {change.old_price:.2f} per unit",
        f"Current price: {change.new_price:.2f} per unit",
        f"Change: {sign}{change.change_percent:.1f}%",
        "",
        f"This represents a price {direction} above your {subscription.threshold:g}% threshold.",
    ]

    if template.expects_increase is not None and template.expects_increase != change.is_increase:
        watched = "increase" if template.expects_increase else "decrease"
        lines.append(f"Note: you are watching for a price {watched}, but prices moved the other way.")

    lines.append(template.on_increase if change.is_increase else template.on_decrease)
    return "\n".join(lines)
