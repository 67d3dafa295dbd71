"""Tests for the SQLAlchemy repositories against SQLite."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from market_engine.db.models import AlertNotification as AlertNotificationModel
from market_engine.db.models import MarketPrice, PriceAlert
from market_engine.db.repositories import (
    DataAccessError,
    SqlAlertRepository,
    SqlNotificationSink,
    SqlPriceRepository,
)
from market_engine.detect.types import (
    AlertNotification,
    AlertType,
    NotificationStatus,
    Quality,
)

from fakes import NOW


async def add_rows(session_factory, *rows):
    async with session_factory() as db:
        db.add_all(rows)
        await db.commit()


def price_row(id, price, days_ago=0, **overrides):
    values = dict(
        id=id,
        crop_type="Maize",
        price_per_unit=Decimal(str(price)),
        unit="kg",
        quality="STANDARD",
        location="Kampala",
        status="APPROVED",
        is_verified=True,
        effective_date=NOW - timedelta(days=days_ago),
    )
    values.update(overrides)
    return MarketPrice(**values)


def alert_row(id, **overrides):
    values = dict(
        id=id,
        user_id="user-1",
        crop_type="Maize",
        location="Kampala",
        alert_type="PRICE_INCREASE",
        frequency="IMMEDIATE",
        threshold=5.0,
        is_active=True,
    )
    values.update(overrides)
    return PriceAlert(**values)


def notification(id, status=NotificationStatus.PENDING, age_days=0, owner_id="user-1"):
    return AlertNotification(
        id=id,
        subscription_id=None,
        owner_id=owner_id,
        title="Maize prices up 5.0% in Kampala",
        message="body",
        alert_type=AlertType.PRICE_INCREASE,
        crop_type="Maize",
        location="Kampala",
        old_price=Decimal("100.00"),
        new_price=Decimal("105.00"),
        price_change=Decimal("5.00"),
        status=status,
        created_at=NOW - timedelta(days=age_days),
    )


class TestSqlPriceRepository:

    @pytest.mark.asyncio
    async def test_recent_prices_filter_and_order(self, session_factory):
        await add_rows(
            session_factory,
            price_row("old", 100, days_ago=5),
            price_row("new", 110, days_ago=1),
            price_row("pending", 999, status="PENDING"),
            price_row("unverified", 999, is_verified=False),
            price_row("beans", 999, crop_type="Beans"),
            price_row("gulu", 999, location="Gulu"),
        )
        repo = SqlPriceRepository(session_factory)

        records = await repo.find_recent_approved_prices("maize", "KAMPALA")

        assert [r.id for r in records] == ["new", "old"]
        assert records[0].price_per_unit == Decimal("110")
        assert records[0].quality == Quality.STANDARD

    @pytest.mark.asyncio
    async def test_substring_match_and_quality_filter(self, session_factory):
        await add_rows(
            session_factory,
            price_row("a", 100, crop_type="White Maize", location="Kampala Central"),
            price_row("b", 200, quality="PREMIUM"),
        )
        repo = SqlPriceRepository(session_factory)

        standard = await repo.find_recent_approved_prices("maize", "kampala", Quality.STANDARD)
        premium = await repo.find_recent_approved_prices("maize", "kampala", Quality.PREMIUM)

        assert [r.id for r in standard] == ["a"]
        assert [r.id for r in premium] == ["b"]

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, session_factory):
        await add_rows(session_factory, price_row("a", 100))
        repo = SqlPriceRepository(session_factory)

        assert await repo.find_recent_approved_prices("%", "Kampala") == []

    @pytest.mark.asyncio
    async def test_limit_and_expiry(self, session_factory):
        await add_rows(
            session_factory,
            *[price_row(f"p{i}", 100 + i, days_ago=i) for i in range(5)],
            price_row("expired", 500, days_ago=0.5, expiry_date=datetime(2000, 1, 1)),
        )
        repo = SqlPriceRepository(session_factory)

        limited = await repo.find_recent_approved_prices("Maize", "Kampala", limit=3)
        fresh = await repo.find_recent_approved_prices("Maize", "Kampala", exclude_expired=True)

        assert [r.id for r in limited] == ["p0", "expired", "p1"]
        assert "expired" not in [r.id for r in fresh]
        assert len(fresh) == 5

    @pytest.mark.asyncio
    async def test_seasonal_window_is_half_open(self, session_factory):
        await add_rows(
            session_factory,
            price_row("start", 100, effective_date=datetime(2024, 6, 1)),
            price_row("inside", 100, effective_date=datetime(2024, 6, 30, 23, 59)),
            price_row("end", 100, effective_date=datetime(2024, 7, 1)),
        )
        repo = SqlPriceRepository(session_factory)

        records = await repo.find_seasonal_prices(
            "Maize", "Kampala", datetime(2024, 6, 1), datetime(2024, 7, 1)
        )

        assert sorted(r.id for r in records) == ["inside", "start"]


class TestSqlAlertRepository:

    @pytest.mark.asyncio
    async def test_lists_only_active(self, session_factory):
        await add_rows(
            session_factory,
            alert_row("on", quality="PREMIUM"),
            alert_row("off", is_active=False),
        )
        repo = SqlAlertRepository(session_factory)

        subscriptions = await repo.list_active_subscriptions()

        assert [s.id for s in subscriptions] == ["on"]
        assert subscriptions[0].quality == Quality.PREMIUM
        assert subscriptions[0].alert_type == AlertType.PRICE_INCREASE
        assert subscriptions[0].owner_id == "user-1"

    @pytest.mark.asyncio
    async def test_compare_and_set(self, session_factory):
        await add_rows(session_factory, alert_row("a"))
        repo = SqlAlertRepository(session_factory)
        later = NOW + timedelta(minutes=10)

        assert await repo.update_last_triggered("a", NOW, None) is True
        assert await repo.update_last_triggered("a", later, None) is False
        assert await repo.update_last_triggered("a", later, NOW) is True

        subscriptions = await repo.list_active_subscriptions()
        assert subscriptions[0].last_triggered_at == later

    @pytest.mark.asyncio
    async def test_update_missing_subscription(self, session_factory):
        repo = SqlAlertRepository(session_factory)
        assert await repo.update_last_triggered("missing", NOW, None) is False


class TestSqlNotificationSink:

    @pytest.mark.asyncio
    async def test_create_and_count_pending(self, session_factory):
        sink = SqlNotificationSink(session_factory)
        await sink.create(notification("1"))
        await sink.create(notification("2", status=NotificationStatus.READ))
        await sink.create(notification("3", owner_id="user-2"))

        assert await sink.count_pending("user-1") == 1
        assert await sink.count_pending("user-2") == 1
        assert await sink.count_pending("nobody") == 0

    @pytest.mark.asyncio
    async def test_delete_expired(self, session_factory):
        sink = SqlNotificationSink(session_factory)
        await sink.create(notification("old-read", NotificationStatus.READ, age_days=40))
        await sink.create(notification("old-pending", NotificationStatus.PENDING, age_days=40))
        await sink.create(notification("new-read", NotificationStatus.READ, age_days=1))

        deleted = await sink.delete_expired(
            NOW - timedelta(days=30),
            (NotificationStatus.READ, NotificationStatus.DISMISSED),
        )

        assert deleted == 1
        remaining, total = await sink.list_for_owner("user-1")
        assert total == 2
        assert {n.id for n in remaining} == {"old-pending", "new-read"}

    @pytest.mark.asyncio
    async def test_list_for_owner_pages_newest_first(self, session_factory):
        sink = SqlNotificationSink(session_factory)
        for i in range(5):
            await sink.create(notification(f"n{i}", age_days=i))

        page, total = await sink.list_for_owner("user-1", limit=2, offset=1)

        assert total == 5
        assert [n.id for n in page] == ["n1", "n2"]
        assert page[0].old_price == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_update_status_sets_timestamps(self, session_factory):
        sink = SqlNotificationSink(session_factory)
        await sink.create(notification("mine"))
        await sink.create(notification("theirs", owner_id="user-2"))

        updated = await sink.update_status("user-1", ["mine", "theirs"], NotificationStatus.READ)

        assert updated == 1
        async with session_factory() as db:
            mine = await db.get(AlertNotificationModel, "mine")
            theirs = await db.get(AlertNotificationModel, "theirs")
        assert mine.status == "READ"
        assert mine.read_at is not None
        assert theirs.status == "PENDING"

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, session_factory):
        sink = SqlNotificationSink(session_factory)
        await sink.create(notification("dup"))

        with pytest.raises(DataAccessError):
            await sink.create(notification("dup"))
