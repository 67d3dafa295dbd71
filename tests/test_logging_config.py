"""Tests for structured logging."""

import io
import json
import logging

from market_engine.logging_config import CustomJsonFormatter, get_logger


def capture(name):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    base = logging.getLogger(name)
    base.addHandler(handler)
    base.setLevel(logging.INFO)
    base.propagate = False
    return stream


def test_group_context_is_written_to_json():
    stream = capture("tests.logging.group")
    logger = get_logger("tests.logging.group", crop_type="Maize", location="Kampala", quality="ANY")

    logger.error("Error processing alert group")

    record = json.loads(stream.getvalue())
    assert record["message"] == "Error processing alert group"
    assert record["level"] == "ERROR"
    assert record["crop_type"] == "Maize"
    assert record["location"] == "Kampala"
    assert record["alert_group"] == "Maize|Kampala|ANY"


def test_subscription_context_without_group():
    stream = capture("tests.logging.subscription")
    logger = get_logger("tests.logging.subscription", subscription_id="alert-1", owner_id="user-1")

    logger.info("Alert alert-1 was triggered elsewhere or removed; skipping", extra={"cycle": 3})

    record = json.loads(stream.getvalue())
    assert record["subscription_id"] == "alert-1"
    assert record["owner_id"] == "user-1"
    assert record["cycle"] == 3
    assert "alert_group" not in record
