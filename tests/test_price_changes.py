"""Tests for price change detection and subscription grouping."""

from decimal import Decimal

import pytest

from market_engine.detect.price_changes import (
    calculate_price_changes,
    change_matches_subscription,
    group_subscriptions,
)
from market_engine.detect.types import Quality

from fakes import make_price, make_subscription


def test_single_increase():
    records = [make_price(105, 0), make_price(100, 1)]

    changes = calculate_price_changes(records)

    assert len(changes) == 1
    change = changes[0]
    assert change.old_price == Decimal("100")
    assert change.new_price == Decimal("105")
    assert change.price_change == Decimal("5")
    assert change.change_percent == pytest.approx(5.0)
    assert change.is_increase


def test_changes_are_newest_first():
    records = [make_price(90, 0), make_price(100, 1), make_price(80, 2)]

    changes = calculate_price_changes(records)

    assert [c.change_percent for c in changes] == pytest.approx([-10.0, 25.0])
    assert changes[0].effective_date == records[0].effective_date


def test_noise_floor_drops_small_moves():
    records = [make_price(101, 0), make_price(100, 1), make_price(90, 2)]

    changes = calculate_price_changes(records, noise_floor_percent=1.0)

    assert len(changes) == 1
    assert changes[0].old_price == Decimal("90")


def test_zero_older_price_is_skipped():
    records = [make_price(50, 0), make_price(0, 1)]
    assert calculate_price_changes(records) == []


def test_fewer_than_two_records():
    assert calculate_price_changes([make_price(100)]) == []
    assert calculate_price_changes([]) == []


class TestMatching:
    def test_substring_case_insensitive(self):
        change = calculate_price_changes(
            [make_price(110, 0, crop_type="White Maize", location="Kampala Central"),
             make_price(100, 1, crop_type="White Maize", location="Kampala Central")]
        )[0]

        assert change_matches_subscription(change, make_subscription(crop_type="maize", location="KAMPALA"))
        assert not change_matches_subscription(change, make_subscription(crop_type="beans"))
        assert not change_matches_subscription(change, make_subscription(location="Gulu"))

    def test_quality_exact_or_any(self):
        change = calculate_price_changes(
            [make_price(110, 0, quality=Quality.PREMIUM), make_price(100, 1, quality=Quality.PREMIUM)]
        )[0]

        assert change_matches_subscription(change, make_subscription(quality=None))
        assert change_matches_subscription(change, make_subscription(quality=Quality.PREMIUM))
        assert not change_matches_subscription(change, make_subscription(quality=Quality.ECONOMY))


def test_grouping_shares_identical_keys():
    subscriptions = [
        make_subscription(id="a"),
        make_subscription(id="b", threshold=10),
        make_subscription(id="c", quality=Quality.PREMIUM),
        make_subscription(id="d", location="Gulu"),
    ]

    groups = group_subscriptions(subscriptions)

    assert set(groups) == {
        ("Maize", "Kampala", "ANY"),
        ("Maize", "Kampala", "PREMIUM"),
        ("Maize", "Gulu", "ANY"),
    }
    assert [s.id for s in groups[("Maize", "Kampala", "ANY")]] == ["a", "b"]
