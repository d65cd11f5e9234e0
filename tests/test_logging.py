"""
Tests for the JSON log formatter and credential redaction.
"""
import json
import logging

import pytest

from marketplace.monitoring.logging import MarketplaceJsonFormatter, redact_event


def format_record(**extra: object) -> dict:
    formatter = MarketplaceJsonFormatter(
        app_name="Asset Marketplace",
        app_env="test",
        fmt="%(message)s",
        rename_fields={"message": "event"},
    )
    record = logging.makeLogRecord(
        {"name": "marketplace.integrations.paypal_client", "levelname": "ERROR",
         "msg": "paypal_api_error", **extra}
    )
    return json.loads(formatter.format(record))


@pytest.mark.unit
def test_formatter_stamps_service_fields() -> None:
    line = format_record(operation="capture_order", status_code=422)

    assert line["event"] == "paypal_api_error"
    assert line["level"] == "ERROR"
    assert line["logger"] == "marketplace.integrations.paypal_client"
    assert line["app_name"] == "Asset Marketplace"
    assert line["app_env"] == "test"
    assert line["status_code"] == 422


@pytest.mark.unit
def test_formatter_redacts_credentials() -> None:
    line = format_record(client_secret="EHsecret", signature="abc123", order_token="ORDER-1")

    assert line["client_secret"] == "***REDACTED***"
    assert line["signature"] == "***REDACTED***"
    assert line["order_token"] == "ORDER-1"


@pytest.mark.unit
def test_structlog_processor_redacts_before_rendering() -> None:
    event = redact_event(None, "info", {"event": "x", "authorization": "Basic Zm9v", "asset_id": "a"})

    assert event == {"event": "x", "authorization": "***REDACTED***", "asset_id": "a"}
