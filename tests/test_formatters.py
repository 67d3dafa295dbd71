"""Tests for alert notification text."""

from decimal import Decimal

import pytest

from market_engine.detect.types import AlertType, PriceChange, Quality
from market_engine.notify.formatters import (
    ALERT_TEMPLATES,
    format_alert_message,
    format_alert_title,
)

from fakes import NOW, make_subscription


def make_change(old, new):
    old, new = Decimal(old), Decimal(new)
    return PriceChange(
        crop_type="Maize",
        location="Kampala",
        quality=Quality.STANDARD,
        old_price=old,
        new_price=new,
        price_change=new - old,
        change_percent=float((new - old) / old * 100),
        effective_date=NOW,
    )


def test_every_alert_type_has_a_template():
    assert set(ALERT_TEMPLATES) == set(AlertType)


def test_increase_title():
    title = format_alert_title(AlertType.PRICE_INCREASE, make_change("100", "105"))
    assert title == "Maize prices up 5.0% in Kampala"


def test_decrease_title_uses_magnitude():
    title = format_alert_title(AlertType.PRICE_DECREASE, make_change("100", "88"))
    assert title == "Maize prices down 12.0% in Kampala"


def test_message_contents():
    message = format_alert_message(make_subscription(threshold=4), make_change("100", "105"))
    lines = message.splitlines()

    assert lines[0].startswith("Price Increase Alert: Maize prices in Kampala")
    assert "Previous price: 100.00 per unit" in lines
    assert "Current price: 105.00 per unit" in lines
    assert "Change: +5.0%" in lines
    assert "This represents a price increase above your 4% threshold." in lines
    assert "Note:" not in message
    assert lines[-1] == ALERT_TEMPLATES[AlertType.PRICE_INCREASE].on_increase


def test_message_states_actual_direction_for_volatility():
    sub = make_subscription(alert_type=AlertType.PRICE_VOLATILITY, threshold=2.5)
    message = format_alert_message(sub, make_change("100", "90"))

    assert "Change: -10.0%" in message
    assert "price decrease above your 2.5% threshold" in message
    assert "Note:" not in message


@pytest.mark.parametrize(
    "alert_type,old,new,watched",
    [
        (AlertType.PRICE_INCREASE, "100", "90", "increase"),
        (AlertType.PRICE_DECREASE, "100", "110", "decrease"),
    ],
)
def test_message_flags_direction_mismatch(alert_type, old, new, watched):
    message = format_alert_message(make_subscription(alert_type=alert_type), make_change(old, new))
    assert f"you are watching for a price {watched}" in message
