"""Tests for structured logging and the event publisher."""

import json
import logging

from helpdesk.shared.infrastructure.logging import (
    CorrelationIdFilter,
    CustomJsonFormatter,
    correlation_scope,
    get_correlation_id,
    log_latency,
)
from helpdesk.sla.domain import SLAEvent
from helpdesk.sla.infrastructure import LoggingEventPublisher

from tests.conftest import utc


def _format(record: logging.LogRecord) -> dict:
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
    return json.loads(formatter.format(record))


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("helpdesk.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_adds_context():
    payload = _format(_record("SLA started", ticket_id="t1", correlation_id="abc"))

    assert payload["message"] == "SLA started"
    assert payload["ticket_id"] == "t1"
    assert payload["correlation_id"] == "abc"
    assert payload["environment"] == "test"
    assert "timestamp" in payload


def test_formatter_redacts_secrets():
    payload = _format(_record("connect", api_key="secret", db_password="hunter2"))

    assert payload["api_key"] == "***REDACTED***"
    assert payload["db_password"] == "***REDACTED***"


def test_log_latency(caplog):
    logger = logging.getLogger("helpdesk.test.latency")

    with caplog.at_level(logging.INFO, logger="helpdesk.test.latency"):
        with log_latency(logger, "sla_breach_sweep", instances=3):
            pass

    [record] = caplog.records
    assert record.getMessage() == "sla_breach_sweep completed"
    assert record.instances == 3
    assert record.latency_ms >= 0


async def test_event_publisher_logs_event(caplog):
    publisher = LoggingEventPublisher(logger_name="helpdesk.test.events")
    event = SLAEvent(
        type="SLA_MET",
        ticket_id="t1",
        policy_id="p1",
        occurred_at=utc(2024, 1, 15, 21, 0),
        payload={"breached": False},
    )

    with caplog.at_level(logging.INFO, logger="helpdesk.test.events"):
        await publisher.publish(event)

    [record] = caplog.records
    assert record.getMessage() == "SLA_MET"
    assert record.ticket_id == "t1"
    assert record.occurred_at == "2024-01-15T21:00:00+00:00"
    assert record.payload == {"breached": False}


def test_filter_stamps_context_correlation_id():
    record = _record("SLA paused")

    with correlation_scope("req-42") as correlation_id:
        CorrelationIdFilter().filter(record)

    assert correlation_id == "req-42"
    assert record.correlation_id == "req-42"
    assert get_correlation_id() is None


def test_filter_keeps_explicit_correlation_id():
    record = _record("SLA paused", correlation_id="explicit")

    with correlation_scope("req-42"):
        CorrelationIdFilter().filter(record)

    assert record.correlation_id == "explicit"


def test_correlation_scope_generates_id():
    with correlation_scope() as correlation_id:
        assert correlation_id
        assert _format(_record("sweep"))["correlation_id"] == correlation_id
