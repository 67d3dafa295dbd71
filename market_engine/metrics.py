"""Prometheus metrics for the market price engine."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("market_price_engine", "Market price engine application info")
app_info.info({"version": "0.1.0", "name": "market-price-engine"})

# Validation metrics
price_validations_total = Counter(
    "price_validations_total",
    "Total number of price submissions validated",
    ["verdict"],
)

price_validation_failures_total = Counter(
    "price_validation_failures_total",
    "Validations that fell back because of an internal failure",
    ["category"],
)

# Detection cycle metrics
detection_cycles_total = Counter(
    "detection_cycles_total",
    "Total number of alert detection cycles",
    ["status"],
)

detection_cycle_duration_seconds = Histogram(
    "detection_cycle_duration_seconds",
    "Time spent running one detection cycle",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

alert_groups_processed_total = Counter(
    "alert_groups_processed_total",
    "Alert subscription groups processed",
    ["outcome"],
)

active_subscriptions = Gauge(
    "active_alert_subscriptions",
    "Number of active alert subscriptions seen by the last cycle",
)

# Notification metrics
notifications_created_total = Counter(
    "alert_notifications_created_total",
    "Total number of alert notifications created",
    ["alert_type"],
)

notifications_purged_total = Counter(
    "alert_notifications_purged_total",
    "Total number of old notifications deleted",
)

# Scheduler metrics
scheduler_runs_total = Counter(
    "scheduler_runs_total",
    "Total number of scheduler runs",
    ["job_type", "status"],
)

scheduler_last_run_timestamp = Gauge(
    "scheduler_last_run_timestamp",
    "Timestamp of last scheduler run",
    ["job_type"],
)


def record_validation(is_valid: bool):
    """Record a completed validation."""
    verdict = "valid" if is_valid else "invalid"
    price_validations_total.labels(verdict=verdict).inc()


def record_validation_failure(category: str):
    """Record a validation that fell back on an internal error."""
    price_validation_failures_total.labels(category=category).inc()


def record_detection_cycle(success: bool, duration: float, subscriptions: int):
    """Record a finished detection cycle."""
    status = "success" if success else "error"
    detection_cycles_total.labels(status=status).inc()
    detection_cycle_duration_seconds.observe(duration)
    active_subscriptions.set(subscriptions)


def record_group(outcome: str):
    """Record one alert group outcome (processed, skipped, failed, timed_out)."""
    alert_groups_processed_total.labels(outcome=outcome).inc()


def record_notification_created(alert_type: str):
    """Record an alert notification being created."""
    notifications_created_total.labels(alert_type=alert_type).inc()


def record_notifications_purged(count: int):
    """Record deleted notifications."""
    notifications_purged_total.inc(count)


def record_scheduler_run(job_type: str, success: bool):
    """Record a scheduler job run."""
    status = "success" if success else "error"
    scheduler_runs_total.labels(job_type=job_type, status=status).inc()
    scheduler_last_run_timestamp.labels(job_type=job_type).set(time.time())
