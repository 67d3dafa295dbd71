"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class MarketPrice(Base):
    """Submitted commodity price. Append-only; moderated outside this service."""

    __tablename__ = "market_prices"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    crop_type: Mapped[str] = mapped_column(String(128), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    quality: Mapped[str] = mapped_column(String(16), nullable=False)  # PREMIUM, STANDARD, ECONOMY
    location: Mapped[str] = mapped_column(String(128), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="PENDING", nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    effective_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    submitted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_market_prices_lookup", "status", "is_verified", "effective_date"),
    )


class PriceAlert(Base):
    """A user's price alert subscription."""

    __tablename__ = "price_alerts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    crop_type: Mapped[str] = mapped_column(String(128), nullable=False)
    location: Mapped[str] = mapped_column(String(128), nullable=False)
    quality: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # NULL = any grade
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    frequency: Mapped[str] = mapped_column(String(16), default="IMMEDIATE", nullable=False)
    threshold: Mapped[float] = mapped_column(Float, nullable=False)  # Percent
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_triggered: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    # Relationships
    notifications: Mapped[list["AlertNotification"]] = relationship(
        "AlertNotification", back_populates="alert", passive_deletes=True
    )

    __table_args__ = (CheckConstraint("threshold > 0", name="ck_price_alert_threshold"),)


class AlertNotification(Base):
    """Notification produced when a price alert fires."""

    __tablename__ = "alert_notifications"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    # Subscriptions may be deleted later; notifications outlive them
    alert_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("price_alerts.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    crop_type: Mapped[str] = mapped_column(String(128), nullable=False)
    location: Mapped[str] = mapped_column(String(128), nullable=False)
    old_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    new_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price_change: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="PENDING", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    dismissed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    alert: Mapped[Optional["PriceAlert"]] = relationship(
        "PriceAlert", back_populates="notifications"
    )

    __table_args__ = (
        Index("ix_alert_notifications_status_created", "status", "created_at"),
    )


class JobRun(Base):
    """History of scheduled job executions."""

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)  # 'price_detection', 'notification_purge'
    trigger: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # 'scheduled' | 'manual'
    status: Mapped[str] = mapped_column(String(20), default="running", nullable=False)  # running, completed, failed
    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Results
    subscriptions_checked: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    groups_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    groups_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notifications_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notifications_purged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
